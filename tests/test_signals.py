from dropdeck.signals import SignalSource


def test_emit_calls_listeners_in_order():
    s = SignalSource()
    seen = []
    s.add_listener("x", lambda v: seen.append(("a", v)))
    s.add_listener("x", lambda v: seen.append(("b", v)))
    assert s.emit("x", 1) == 2
    assert seen == [("a", 1), ("b", 1)]
    assert s.emit("nobody-listens") == 0


def test_handle_close_is_idempotent():
    s = SignalSource()
    h = s.add_listener("x", lambda: None)
    h.close()
    h.close()
    assert s.listener_count("x") == 0
    assert s.emit("x") == 0


def test_listener_may_close_itself_while_emitting():
    s = SignalSource()
    seen = []

    def once():
        seen.append(1)
        handle.close()

    handle = s.add_listener("x", once)
    s.emit("x")
    s.emit("x")
    assert seen == [1]


def test_handle_as_context_manager():
    s = SignalSource()
    with s.add_listener("x", lambda: None):
        assert s.listener_count() == 1
    assert s.listener_count() == 0
