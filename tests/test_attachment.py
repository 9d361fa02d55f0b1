import os

import pytest

from pollnet.attachment import PollAttachment, dup


@pytest.fixture
def pipe():
    r, w = os.pipe()
    yield r, w
    os.close(r)
    os.close(w)


def test_attachment_defaults():
    pa = PollAttachment()
    assert pa.fd == 0
    assert pa.callback is None


def test_attachment_callback_receives_events():
    seen = []
    pa = PollAttachment(fd=5, callback=lambda fd, ev: seen.append((fd, ev)))
    pa.callback(pa.fd, 1)
    assert seen == [(5, 1)]


def test_dup_returns_distinct_working_descriptor(pipe):
    r, w = pipe
    new_w = dup(w)
    try:
        assert new_w not in (r, w)
        os.write(new_w, b"ping")
        assert os.read(r, 4) == b"ping"
    finally:
        os.close(new_w)


def test_dup_is_close_on_exec(pipe):
    _, w = pipe
    new_w = dup(w)
    try:
        assert os.get_inheritable(new_w) is False
    finally:
        os.close(new_w)


def test_dup_survives_closing_original():
    r, w = os.pipe()
    new_w = dup(w)
    os.close(w)
    try:
        os.write(new_w, b"ok")
        assert os.read(r, 2) == b"ok"
    finally:
        os.close(new_w)
        os.close(r)


def test_dup_closed_descriptor_raises():
    r, w = os.pipe()
    os.close(r)
    os.close(w)
    with pytest.raises(OSError):
        dup(w)