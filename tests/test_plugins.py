"""Plugin registry, configuration and the logging plugin."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from dbusroute import Dispatcher, FilterEntry, MethodInvocation
from dbusroute.plugins._base_plugin import BasePlugin
from dbusroute.plugins.logging import LoggingPlugin


def _invocation(make_call):
    return MethodInvocation(make_call("/org/x", "org.x.Iface", "Get"), [].append)


def _handler(invocation, context):
    return "ok"


def _dispatcher(*entries, **kwargs):
    return Dispatcher(entries or (FilterEntry(handler=_handler),), name="svc", **kwargs)


class _Recorder(BasePlugin):
    plugin_code = "recorder_test"
    plugin_description = "Records the wrapping order"

    __slots__ = ("events",)

    def __init__(self, dispatcher, **cfg):
        self.events = []
        super().__init__(dispatcher, **cfg)

    def configure(self, enabled: bool = True, tag: str = "r"):
        """Recorder options."""

    def wrap_handler(self, dispatcher, entry, call_next):
        def recorded(invocation, context):
            tag = self.configuration(entry.logical_name)["tag"]
            self.events.append(f"{tag}:in")
            result = call_next(invocation, context)
            self.events.append(f"{tag}:out")
            return result

        return recorded


Dispatcher.register_plugin(_Recorder)


def test_logging_plugin_is_registered_on_import():
    assert Dispatcher.available_plugins()["logging"] is LoggingPlugin


def test_logging_plugin_emits_start_and_end(make_call, caplog):
    dispatcher = _dispatcher().plug("logging")
    with caplog.at_level(logging.DEBUG, logger="dbusroute"):
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    messages = [r.getMessage() for r in caplog.records if r.name == "dbusroute"]
    assert messages[0] == "_handler start"
    assert messages[1].startswith("_handler end (") and messages[1].endswith(" ms)")


def test_logging_plugin_level_and_flags(make_call, caplog):
    dispatcher = _dispatcher().plug("logging", level="INFO", flags="before:off")
    with caplog.at_level(logging.INFO, logger="dbusroute"):
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    records = [r for r in caplog.records if r.name == "dbusroute"]
    assert len(records) == 1
    assert records[0].levelno == logging.INFO
    assert "end" in records[0].getMessage()


def test_logging_plugin_uses_given_logger(make_call, caplog):
    custom = logging.getLogger("tests.custom")
    dispatcher = _dispatcher().plug("logging", logger=custom, flags="after:off")
    with caplog.at_level(logging.DEBUG, logger="tests.custom"):
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    assert [r.getMessage() for r in caplog.records if r.name == "tests.custom"] == [
        "_handler start"
    ]


def test_per_handler_override_disables_one_entry(make_call, caplog):
    def quiet(invocation, context):
        pass

    def loud(invocation, context):
        pass

    dispatcher = _dispatcher(
        FilterEntry(handler=quiet, method="Quiet"),
        FilterEntry(handler=loud, method="Loud"),
    ).plug("logging")
    dispatcher.logging.configure(_target="quiet", enabled=False)

    with caplog.at_level(logging.DEBUG, logger="dbusroute"):
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Quiet", _invocation(make_call))
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Loud", _invocation(make_call))

    messages = [r.getMessage() for r in caplog.records if r.name == "dbusroute"]
    assert not any(m.startswith("quiet") for m in messages)
    assert "loud start" in messages
    assert dispatcher.is_plugin_enabled("quiet", "logging") is False
    assert dispatcher.is_plugin_enabled("loud", "logging") is True


def test_comma_separated_targets():
    dispatcher = _dispatcher().plug("logging")
    dispatcher.logging.configure(_target="a, b", level="ERROR")
    assert dispatcher.logging.configuration("a")["level"] == "ERROR"
    assert dispatcher.logging.configuration("b")["level"] == "ERROR"
    assert "level" not in dispatcher.logging.configuration()


def test_invalid_option_is_rejected_by_validation():
    dispatcher = _dispatcher().plug("logging")
    with pytest.raises(ValidationError):
        dispatcher.logging.configure(level="TRACE")
    with pytest.raises(ValidationError):
        dispatcher.logging.configure(colour="red")


def test_first_attached_plugin_is_outermost(make_call):
    dispatcher = _dispatcher().plug("recorder_test", tag="outer").plug("logging")
    dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    assert dispatcher.recorder_test.events == ["outer:in", "outer:out"]
    assert [p.name for p in dispatcher.iter_plugins()] == ["recorder_test", "logging"]


def test_disabled_plugin_is_bypassed(make_call):
    dispatcher = _dispatcher().plug("recorder_test", enabled=False)
    dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    assert dispatcher.recorder_test.events == []


def test_plug_unknown_or_twice():
    dispatcher = _dispatcher()
    with pytest.raises(ValueError, match="Unknown plugin"):
        dispatcher.plug("nope")
    with pytest.raises(TypeError):
        dispatcher.plug(LoggingPlugin)
    dispatcher.plug("logging")
    with pytest.raises(ValueError, match="already attached"):
        dispatcher.plug("logging")


def test_missing_plugin_attribute():
    with pytest.raises(AttributeError):
        _dispatcher().logging
    with pytest.raises(AttributeError):
        _dispatcher().is_plugin_enabled("_handler", "logging")


def test_register_plugin_validation():
    class NoCode(BasePlugin):
        pass

    class Clash(BasePlugin):
        plugin_code = "logging"

    with pytest.raises(TypeError):
        Dispatcher.register_plugin(object)
    with pytest.raises(ValueError, match="missing plugin_code"):
        Dispatcher.register_plugin(NoCode)
    with pytest.raises(ValueError, match="already registered"):
        Dispatcher.register_plugin(Clash)

    Dispatcher.register_plugin(Clash, name="clash_test")
    assert Dispatcher.available_plugins()["clash_test"] is Clash


def test_base_plugin_accepts_flags_only():
    class Flagged(BasePlugin):
        plugin_code = "flagged_test"

    dispatcher = _dispatcher()
    plugin = Flagged(dispatcher, flags="enabled:off,extra")
    assert plugin.configuration() == {"enabled": False, "extra": True}


def test_string_off_disables_plugin(make_call, caplog):
    dispatcher = _dispatcher().plug("logging", enabled="off")

    assert dispatcher.logging.configuration()["enabled"] is False
    assert dispatcher.is_plugin_enabled("_handler", "logging") is False
    with caplog.at_level(logging.DEBUG, logger="dbusroute"):
        dispatcher.dispatch(":1.7", "/org/x", "org.x.Iface", "Get", _invocation(make_call))
    assert not [r for r in caplog.records if r.name == "dbusroute"]


def test_stored_options_are_coerced():
    dispatcher = _dispatcher().plug("logging", before="no", after=1)
    dispatcher.logging.configure(_target="_handler", enabled="false")

    assert dispatcher.logging.configuration() == {
        "enabled": True,
        "before": False,
        "after": True,
    }
    assert dispatcher.logging.configuration("_handler")["enabled"] is False


def test_flag_states():
    plugin = _dispatcher().plug("logging").logging
    assert plugin._parse_flags("before:off, after, enabled:No,,") == {
        "before": False,
        "after": True,
        "enabled": False,
    }
