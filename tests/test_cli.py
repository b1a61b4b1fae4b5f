"""Tests for command-line parsing and mode selection."""

from unittest.mock import MagicMock

import pytest

from wkhtmltos3 import __version__, cli
from wkhtmltos3.core.config import settings


@pytest.fixture
def no_aws(monkeypatch):
    """No region anywhere, and no real boto3 clients."""
    monkeypatch.setattr(settings, "AWS_REGION", None)
    monkeypatch.setattr(settings, "SQS_QUEUE_URL", None)
    for name in ("REGION", "AWS_DEFAULT_REGION"):
        monkeypatch.delenv(name, raising=False)
    s3 = MagicMock()
    monkeypatch.setattr(cli, "get_s3_client", lambda credentials: s3)
    monkeypatch.setattr(cli, "get_sqs_client", lambda credentials: MagicMock())
    return s3


class TestParseJsonOption:
    def test_array(self):
        assert cli.parse_json_option("imagemagick", '["-trim", "-negate"]') == ["-trim", "-negate"]

    def test_empty_is_no_options(self):
        assert cli.parse_json_option("imagemagick", None) == []

    def test_malformed(self):
        with pytest.raises(cli.OptionError, match="could not parse --imagemagick"):
            cli.parse_json_option("imagemagick", "[-trim")

    def test_object_only_where_allowed(self):
        assert cli.parse_json_option("wkhtmltoimage", '{"quality": 50}', allow_object=True) == {"quality": 50}
        with pytest.raises(cli.OptionError, match="must be an array"):
            cli.parse_json_option("imagemagick", '{"quality": 50}')


class TestInformational:
    @pytest.mark.parametrize("argv", [[], ["--help"], ["-h"], ["-?"]])
    def test_help_exits_zero(self, argv, capsys):
        assert cli.main(argv) == 0
        assert "wkhtmltos3" in capsys.readouterr().out

    def test_version(self, capsys):
        assert cli.main(["--version"]) == 0
        assert capsys.readouterr().out.strip() == f"wkhtmltos3 {__version__}"


class TestBaseJob:
    def test_positional_url(self):
        args = cli.build_parser().parse_args(["-b", "b", "-k", "k.png", "http://example.com"])
        job = cli.build_base_job(args)
        assert (job.url, job.bucket, job.key) == ("http://example.com", "b", "k.png")

    def test_url_option_wins(self):
        args = cli.build_parser().parse_args(["--url", "http://a.com", "http://b.com"])
        assert cli.build_base_job(args).url == "http://a.com"

    def test_job_flags(self):
        args = cli.build_parser().parse_args([
            "--trim", "--redundant", "--format", "png", "--width", "800",
            "--cacheControl", "max-age=60", "--expiresDays", "3",
            "--wkhtmltoimage", '["--quality", "50"]', "--imagemagick", '["-negate"]',
        ])
        job = cli.build_base_job(args)
        assert job.trim and job.redundant
        assert job.cache_control == "max-age=60"
        assert job.expires_days == 3
        assert job.render_options() == ["--width", "800", "--format", "png", "--quality", "50"]
        assert job.convert_options() == ["-trim", "-negate"]


class TestRunOnce:
    def test_missing_bucket_fails_without_upload(self, no_aws):
        assert cli.main(["--key", "k.jpg", "http://example.com"]) == 1
        no_aws.put_object.assert_not_called()

    def test_bad_imagemagick_json(self, no_aws):
        assert cli.main(["-b", "b", "-k", "k", "--imagemagick", "[oops", "http://example.com"]) == 1

    def test_unknown_option_is_only_a_warning(self, no_aws):
        assert cli.main(["--bogus", "--key", "k.jpg", "http://example.com"]) == 1


class TestWorkerMode:
    def test_region_required(self, no_aws):
        assert cli.main(["--queueUrl", "https://sqs.example/123/q", "-b", "b"]) == 1

    def test_invalid_receive_settings(self, no_aws):
        argv = ["--queueUrl", "https://sqs.example/123/q", "--region", "us-east-1", "--maxNumberOfMessages", "50"]
        assert cli.main(argv) == 1

    def test_context_from_flags(self, no_aws):
        args = cli.build_parser().parse_args([
            "--queueUrl", "https://sqs.example/123/q", "--region", "us-east-1",
            "--waitTimeSeconds", "0", "--dedupeMaxEntries", "0", "--maxLoadAvg", "4",
        ])
        context = cli.build_worker_context(args, cli.build_base_job(args))

        assert context.queue.queue_url == "https://sqs.example/123/q"
        assert context.receive_settings.wait_time_seconds == 0
        assert context.receive_settings.max_number_of_messages == settings.SQS_MAX_NUMBER_OF_MESSAGES
        assert not context.dedupe.enabled
        assert context.load_monitor.max_load_average == 4

    def test_interrupt_stops_cleanly(self, no_aws, monkeypatch):
        async def interrupted(self):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli.QueueWorker, "run", interrupted)
        assert cli.main(["--queueUrl", "https://sqs.example/123/q", "--region", "us-east-1"]) == 0
