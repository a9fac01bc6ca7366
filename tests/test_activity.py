import dataclasses

import pytest

from wingsd import activity
from wingsd.activity import Activity, RequestActivity, power_event


def test_power_event_name():
    assert power_event("start") == "server:power.start"
    assert power_event("kill").startswith(activity.ACTIVITY_POWER_PREFIX)


def test_event_builds_activity():
    ra = RequestActivity(server="srv", user="usr", ip="10.0.0.1")
    act = ra.event(activity.ACTIVITY_FILE_UPLOADED, {"file": "a.txt"})
    assert act == Activity(
        server="srv",
        event="server:file.uploaded",
        user="usr",
        ip="10.0.0.1",
        metadata={"file": "a.txt"},
    )


def test_event_without_metadata():
    act = RequestActivity(server="srv").event(activity.ACTIVITY_CONSOLE_COMMAND, None)
    assert act.metadata == {}
    assert act.event == "server:console.command"


def test_metadata_is_copied():
    meta = {"command": "say"}
    act = RequestActivity(server="srv").event(activity.ACTIVITY_CONSOLE_COMMAND, meta)
    meta["command"] = "changed"
    assert act.metadata == {"command": "say"}


def test_with_user_returns_copy():
    ra = RequestActivity(server="srv", user="", ip="1.2.3.4")
    other = ra.with_user("someone")
    assert other.user == "someone"
    assert other.ip == ra.ip
    assert ra.user == ""


def test_request_activity_is_immutable():
    ra = RequestActivity(server="srv", user="orig")
    with pytest.raises(dataclasses.FrozenInstanceError):
        ra.user = "x"
    assert ra.user == "orig"