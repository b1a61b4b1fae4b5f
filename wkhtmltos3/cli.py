"""
wkhtmltos3 - use webkit to convert an html page to an image on s3.

Renders the page at `url` with wkhtmltoimage, optionally runs imagemagick
convert on it, and uploads it to s3 `bucket`/`key`. Runs once with the
command-line options, or with --queueUrl as a worker that processes job
messages from an SQS queue until stopped.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Sequence

from wkhtmltos3 import __version__
from wkhtmltos3.core.aws_client import (
    get_s3_client,
    get_sqs_client,
    resolve_aws_credentials,
    validate_aws_credentials,
)
from wkhtmltos3.core.config import settings
from wkhtmltos3.core.exceptions import JobError
from wkhtmltos3.core.logger import logger
from wkhtmltos3.integrations.sqs_client import SqsQueue
from wkhtmltos3.schemas.job_models import RenderJob
from wkhtmltos3.schemas.sqs_models import ReceiveSettings
from wkhtmltos3.services.dedupe_cache import DedupeCache
from wkhtmltos3.services.job_pipeline import JobPipeline
from wkhtmltos3.services.load_monitor import LoadMonitor
from wkhtmltos3.services.queue_worker import QueueWorker, WorkerContext
from wkhtmltos3.services.uploader import S3Uploader


class OptionError(Exception):
    """A command-line option value could not be used."""


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="wkhtmltos3",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    queue = ap.add_argument_group("queue worker")
    queue.add_argument("-q", "--queueUrl", dest="queue_url",
                       help="url of an aws SQS queue to listen for messages")
    queue.add_argument("--region", help="aws region of the SQS queue")
    queue.add_argument("--maxNumberOfMessages", dest="max_number_of_messages", type=int,
                       help=f"max messages to retrieve at a time (default {settings.SQS_MAX_NUMBER_OF_MESSAGES})")
    queue.add_argument("--waitTimeSeconds", dest="wait_time_seconds", type=int,
                       help=f"long polling wait for messages (default {settings.SQS_WAIT_TIME_SECONDS})")
    queue.add_argument("--visibilityTimeout", dest="visibility_timeout", type=int,
                       help=f"seconds before an unprocessed message is redelivered (default {settings.SQS_VISIBILITY_TIMEOUT})")
    queue.add_argument("--dedupeMaxEntries", dest="dedupe_max_entries", type=int,
                       help=f"duplicate suppression capacity, 0 disables (default {settings.DEDUPE_MAX_ENTRIES})")
    queue.add_argument("--dedupeMaxAge", dest="dedupe_max_age", type=float,
                       help=f"seconds a job is remembered, 0 disables (default {settings.DEDUPE_MAX_AGE_SECS})")
    queue.add_argument("--maxMemory", dest="max_memory", type=float,
                       help=f"memory fraction above which batches are drained (default {settings.LOAD_MAX_MEMORY_FRACTION})")
    queue.add_argument("--maxLoadAvg", dest="max_load_avg", type=float,
                       help=f"1-minute load average above which batches are drained (default {settings.LOAD_MAX_LOAD_AVERAGE})")

    job = ap.add_argument_group("job")
    job.add_argument("-b", "--bucket", help="amazon s3 bucket destination")
    job.add_argument("-k", "--key", help="key in amazon s3 bucket")
    job.add_argument("--format", help="image file format (default jpg)")
    job.add_argument("-t", "--trim", action="store_true",
                     help="crop surrounding whitespace with imagemagick -trim")
    job.add_argument("--width", type=int, help="explicit wkhtmltoimage render width")
    job.add_argument("--height", type=int, help="explicit wkhtmltoimage render height")
    job.add_argument("--cacheControl", dest="cache_control", help="Cache-Control header for the s3 object")
    job.add_argument("--expiresDays", dest="expires_days", type=float,
                     help="set the s3 Expires header this many days ahead")
    job.add_argument("--acl", help=f"s3 canned ACL (default {settings.S3_ACL!r})")
    job.add_argument("--redundant", action="store_true",
                     help="render until two renders produce identical images")
    job.add_argument("--wkhtmltoimage", help="json array (or object) of options passed to wkhtmltoimage")
    job.add_argument("--imagemagick", help="json array of options passed to imagemagick convert")
    job.add_argument("--url", dest="url_option", help="url of the html page to render")
    job.add_argument("url", nargs="?", help="url of the html page to render")

    aws = ap.add_argument_group("aws credentials")
    aws.add_argument("--accessKeyId", dest="access_key_id",
                     help="defaults to AWS_ACCESS_KEY_ID / ACCESS_KEY_ID, then ambient credentials")
    aws.add_argument("--secretAccessKey", dest="secret_access_key",
                     help="defaults to AWS_SECRET_ACCESS_KEY / SECRET_ACCESS_KEY, then ambient credentials")

    misc = ap.add_argument_group("misc")
    misc.add_argument("-v", "--version", action="store_true", help="display the current version")
    misc.add_argument("-V", "--verbose", action="store_true", help="provide verbose logging")
    misc.add_argument("-P", "--profile", action="store_true", help="log execution timing info after each job")
    misc.add_argument("-?", "-h", "--help", action="store_true", dest="help", help="display this help")
    return ap


def parse_json_option(name: str, raw: Optional[str], allow_object: bool = False) -> Any:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OptionError(f"could not parse --{name} json: {raw}") from e
    if isinstance(value, list) or (allow_object and isinstance(value, dict)):
        return value
    kind = "an array or object" if allow_object else "an array"
    raise OptionError(f"--{name} json must be {kind}: {raw}")


def build_base_job(args: argparse.Namespace) -> RenderJob:
    """Job built from the command line; queue messages are merged onto it."""
    fields = {
        "url": args.url_option or args.url,
        "bucket": args.bucket,
        "key": args.key,
        "format": args.format,
        "width": args.width,
        "height": args.height,
        "cache_control": args.cache_control,
        "expires_days": args.expires_days,
        "acl": args.acl,
        "trim": args.trim,
        "redundant": args.redundant,
        "wkhtmltoimage": parse_json_option("wkhtmltoimage", args.wkhtmltoimage, allow_object=True),
        "imagemagick": parse_json_option("imagemagick", args.imagemagick),
        "verbose": args.verbose,
        "profile": args.profile,
    }
    return RenderJob(**fields)


def build_worker_context(args: argparse.Namespace, base_job: RenderJob) -> WorkerContext:
    credentials = resolve_aws_credentials(args.access_key_id, args.secret_access_key, args.region)
    if not credentials.region_name:
        raise OptionError("--region is required when --queueUrl is specified")
    validate_aws_credentials(credentials)

    try:
        receive_settings = ReceiveSettings(
            max_number_of_messages=args.max_number_of_messages or settings.SQS_MAX_NUMBER_OF_MESSAGES,
            wait_time_seconds=_first_set(args.wait_time_seconds, settings.SQS_WAIT_TIME_SECONDS),
            visibility_timeout=_first_set(args.visibility_timeout, settings.SQS_VISIBILITY_TIMEOUT),
        )
    except ValueError as e:
        raise OptionError(f"invalid queue options: {e}") from e
    return WorkerContext(
        base_job=base_job,
        queue=SqsQueue(get_sqs_client(credentials), args.queue_url),
        pipeline=JobPipeline(uploader=S3Uploader(get_s3_client(credentials))),
        dedupe=DedupeCache(args.dedupe_max_entries, args.dedupe_max_age),
        load_monitor=LoadMonitor(args.max_memory, args.max_load_avg),
        receive_settings=receive_settings,
        error_backoff_secs=settings.QUEUE_ERROR_BACKOFF_SECS,
        drain_timeout_secs=settings.DRAIN_TIMEOUT_SECS,
    )


def _first_set(value, default):
    return default if value is None else value


def run_once(args: argparse.Namespace, job: RenderJob) -> int:
    credentials = resolve_aws_credentials(args.access_key_id, args.secret_access_key, args.region)
    pipeline = JobPipeline(uploader=S3Uploader(get_s3_client(credentials)))
    try:
        asyncio.run(pipeline.run(job))
    except JobError:
        return 1
    return 0


def run_worker(args: argparse.Namespace, job: RenderJob) -> int:
    context = build_worker_context(args, job)
    try:
        asyncio.run(QueueWorker(context).run())
    except KeyboardInterrupt:
        logger.info("queue worker: stopped")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args, unknown = parser.parse_known_args(argv)

    if args.help or not argv:
        parser.print_help()
        return 0
    if args.version:
        print(f"wkhtmltos3 {__version__}")
        return 0
    if unknown:
        logger.warning(f"WARNING: unknown extra options: {json.dumps(unknown)}")

    args.queue_url = args.queue_url or settings.SQS_QUEUE_URL
    try:
        job = build_base_job(args)
        if args.queue_url:
            return run_worker(args, job)
        return run_once(args, job)
    except OptionError as e:
        logger.error(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
