from wkhtmltos3.utils.profile_log import ProfileTimer


def test_entries_are_right_aligned_milliseconds():
    timer = ProfileTimer(title="Test Performance")
    timer.add_entry(10.0, "Did something slow", until=21.185)
    timer.add_entry(0.0, "Did something fast", until=0.089)
    assert timer.report() == "Test Performance:\n   11185: Did something slow\n      89: Did something fast\n"


def test_disabled_timer_records_nothing():
    timer = ProfileTimer(enabled=False)
    timer.add_entry(timer.now(), "ignored")
    assert timer.entries == []


def test_clear():
    timer = ProfileTimer()
    timer.add_entry(0.0, "x", until=1.0)
    timer.clear()
    assert timer.entries == []


def test_float_error_does_not_drop_a_millisecond():
    timer = ProfileTimer()
    timer.add_entry(0.1, "step", until=0.3)
    assert timer.entries == ["   200: step"]
