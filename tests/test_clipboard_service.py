import threading

from clipshelf.models import ImageContent, TextContent
from clipshelf.services import ClipboardService

from conftest import FakeClipboard, wait_for


def make_service(clipboard, captured, **kwargs):
    return ClipboardService(on_capture=captured.append, reader=clipboard, **kwargs)


def test_initial_content_is_only_recorded_as_seen():
    clipboard = FakeClipboard(TextContent(plain="already there"))
    captured = []
    service = make_service(clipboard, captured)

    assert service.poll_once() is None
    assert captured == []

    clipboard.set_text("new")
    assert service.poll_once() == TextContent(plain="new")
    assert captured == [TextContent(plain="new")]


def test_capture_initial_emits_first_content():
    clipboard = FakeClipboard(TextContent(plain="already there"))
    captured = []
    service = make_service(clipboard, captured, capture_initial=True)

    service.poll_once()

    assert captured == [TextContent(plain="already there")]


def test_repeated_content_is_emitted_once():
    clipboard = FakeClipboard()
    captured = []
    service = make_service(clipboard, captured)
    service.poll_once()

    clipboard.set_text("hello")
    for _ in range(5):
        service.poll_once()

    assert captured == [TextContent(plain="hello")]


def test_copying_same_text_again_after_other_content_is_new():
    clipboard = FakeClipboard()
    captured = []
    service = make_service(clipboard, captured)
    service.poll_once()

    for text in ("a", "b", "a"):
        clipboard.set_text(text)
        service.poll_once()

    assert [c.plain for c in captured] == ["a", "b", "a"]


def test_identical_images_are_deduplicated():
    clipboard = FakeClipboard()
    captured = []
    service = make_service(clipboard, captured)
    service.poll_once()

    clipboard.content = ImageContent(data=b"png-bytes", width=2, height=2)
    service.poll_once()
    clipboard.content = ImageContent(data=b"png-bytes", width=2, height=2)
    service.poll_once()

    assert len(captured) == 1


def test_read_failure_skips_the_tick():
    clipboard = FakeClipboard()
    captured = []
    service = make_service(clipboard, captured)
    service.poll_once()

    clipboard.set_text("after outage")
    clipboard.fail = True
    assert service.poll_once() is None

    clipboard.fail = False
    service.poll_once()
    assert captured == [TextContent(plain="after outage")]


def test_hold_suppresses_and_mark_seen_prevents_recapture():
    clipboard = FakeClipboard()
    captured = []
    service = make_service(clipboard, captured)
    service.poll_once()

    with service.hold():
        clipboard.set_text("written by us")
        assert service.poll_once() is None
        service.mark_seen(clipboard.content)

    service.poll_once()
    assert captured == []


def test_handler_errors_do_not_stop_the_watcher():
    clipboard = FakeClipboard()
    calls = []

    def handler(content):
        calls.append(content)
        raise RuntimeError("consumer bug")

    service = ClipboardService(on_capture=handler, reader=clipboard)
    service.poll_once()
    clipboard.set_text("one")
    service.poll_once()
    clipboard.set_text("two")
    service.poll_once()

    assert len(calls) == 2


def test_background_loop_delivers_on_dispatcher_thread():
    clipboard = FakeClipboard()
    captured = []
    threads = []
    done = threading.Event()

    def handler(content):
        threads.append(threading.current_thread().name)
        captured.append(content)
        done.set()

    with ClipboardService(on_capture=handler, reader=clipboard, poll_interval=0.01) as service:
        assert wait_for(lambda: clipboard.reads > 0)
        clipboard.set_text("background")
        assert done.wait(timeout=3.0)
        assert service.is_running

    assert not service.is_running
    assert captured == [TextContent(plain="background")]
    assert threads[0].startswith("clipshelf-capture")


class HoldAfterDedupService(ClipboardService):
    """Takes a hold between the dedup check and emission of the first poll."""

    def __init__(self, *args, **kwargs):
        self.held = None
        super().__init__(*args, **kwargs)

    @property
    def capture_initial(self):
        # read right after the dedup check on the first poll
        if self.held is None:
            self.held = self.hold()
            self.held.__enter__()
        return True

    @capture_initial.setter
    def capture_initial(self, value):
        pass


def test_hold_taken_after_dedup_suppresses_emission():
    clipboard = FakeClipboard(TextContent(plain="selected"))
    captured = []
    service = HoldAfterDedupService(on_capture=captured.append, reader=clipboard)

    assert service.poll_once() is None
    service.held.__exit__(None, None, None)

    assert captured == []
    # the content was recorded as seen, so a later poll does not emit it either
    assert service.poll_once() is None
    assert captured == []
