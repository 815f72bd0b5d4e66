import pytest

from hackpulse.services.analysis_queue import AnalysisQueue


async def test_enqueue_does_not_run_handler_inline() -> None:
    handled = []

    async def handler(commit_id: int) -> None:
        handled.append(commit_id)

    queue = AnalysisQueue(handler, delay=0)
    queue.enqueue(1)
    queue.enqueue(2)
    assert handled == []
    assert queue.pending == 2

    queue.start()
    await queue.join()
    await queue.stop()
    assert handled == [1, 2]


async def test_failing_item_does_not_stop_worker() -> None:
    handled = []

    async def handler(commit_id: int) -> None:
        if commit_id == 1:
            raise RuntimeError("provider exploded")
        handled.append(commit_id)

    queue = AnalysisQueue(handler, delay=0)
    queue.start()
    queue.enqueue(1)
    queue.enqueue(2)
    await queue.join()
    assert queue.running
    await queue.stop()
    assert handled == [2]
    assert not queue.running


async def test_start_requires_handler() -> None:
    with pytest.raises(RuntimeError):
        AnalysisQueue().start()
