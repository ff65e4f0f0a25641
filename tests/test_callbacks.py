import logging

from live.callbacks import NO_CALLBACKS, LiveCallbacks


def test_defaults_are_noops():
    for name in LiveCallbacks.hook_names():
        assert NO_CALLBACKS.emit(name, "x")


def test_emit_calls_hook():
    received = []
    callbacks = LiveCallbacks(on_text_received=received.append)
    assert callbacks.emit("on_text_received", "hi")
    assert received == ["hi"]


def test_raising_hook_is_logged(caplog):
    def boom():
        raise RuntimeError("bad hook")

    callbacks = LiveCallbacks(on_connected=boom)
    with caplog.at_level(logging.ERROR, logger="live.callbacks"):
        assert callbacks.emit("on_connected") is False
    assert "on_connected" in caplog.text
    assert "bad hook" in caplog.text
