import logging
import threading
import time
from queue import Queue
from typing import Callable

logger = logging.getLogger(__name__)

Task = Callable[[], None]


class WorkerPool:
    """
    A fixed set of worker threads draining a shared queue. Tasks may submit
    more tasks; the pool is quiescent once the queue is empty and no worker is
    busy, which is how a crawl tree knows it has been fully explored.

    Threads are daemons: after a forced shutdown any worker still stuck in a
    network call is abandoned rather than joined.
    """

    def __init__(self, workers: int) -> None:
        self.max_workers = max(1, workers)

        # These variables are shared by every worker thread
        self.queue: Queue[Task] = Queue()
        self.condition = threading.Condition()
        self.active_workers = 0
        self._closed = False
        self._threads: list[threading.Thread] = []

        for i in range(self.max_workers):
            t = threading.Thread(
                target=self._worker, args=(i,), name=f"crawl-worker-{i}", daemon=True
            )
            t.start()
            self._threads.append(t)
        logger.info("Started worker pool with %d threads", self.max_workers)

    def submit(self, task: Task) -> bool:
        with self.condition:
            if self._closed:
                return False
            self.queue.put(task)
            self.condition.notify_all()
            return True

    def _worker(self, worker_id: int) -> None:
        while True:
            with self.condition:
                while self.queue.empty() and not self._closed:
                    self.condition.wait()

                # A closed pool still drains what is left in the queue; only
                # shutdown_now() throws queued work away.
                if self.queue.empty():
                    logger.debug("Exiting worker thread %d", worker_id)
                    break

                task = self.queue.get_nowait()
                self.active_workers += 1

            try:
                task()
            except Exception:
                logger.exception("Worker %d: unhandled error in task", worker_id)
            finally:
                with self.condition:
                    self.queue.task_done()
                    self.active_workers -= 1
                    self.condition.notify_all()

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def is_quiescent(self) -> bool:
        with self.condition:
            return self.queue.empty() and self.active_workers == 0

    def await_quiescence(self, timeout: float | None = None) -> bool:
        with self.condition:
            return self.condition.wait_for(
                lambda: self.queue.empty() and self.active_workers == 0, timeout
            )

    def shutdown(self, timeout: float | None = None) -> bool:
        """
        Stops accepting work and waits for the threads to finish what is
        queued. Returns False if they did not finish within the timeout.
        """
        with self.condition:
            self._closed = True
            self.condition.notify_all()

        deadline = None if timeout is None else time.monotonic() + timeout
        for t in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            t.join(remaining)
        alive = [t for t in self._threads if t.is_alive()]
        if not alive:
            logger.info("Worker pool shut down")
        return not alive

    def shutdown_now(self) -> int:
        """
        Discards all queued tasks and closes the pool. Tasks already running
        are left to finish on their own.
        """
        dropped = 0
        with self.condition:
            self._closed = True
            while not self.queue.empty():
                self.queue.get_nowait()
                self.queue.task_done()
                dropped += 1
            self.condition.notify_all()
        logger.warning("Worker pool forcibly shut down, %d queued tasks dropped", dropped)
        return dropped
