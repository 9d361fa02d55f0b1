import threading

from pollnet.taskqueue import Task, TaskQueue


def test_concurrent_producers_and_consumers():
    task_num = 10000
    q = TaskQueue()
    counter = 0
    counter_lock = threading.Lock()

    def produce():
        for _ in range(task_num):
            q.enqueue(Task())

    def consume():
        nonlocal counter
        while True:
            task = q.dequeue()
            with counter_lock:
                if task is not None:
                    counter += 1
                done = counter == 2 * task_num
            if task is None and done:
                break

    threads = [threading.Thread(target=produce) for _ in range(2)]
    threads += [threading.Thread(target=consume) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert all(not t.is_alive() for t in threads)
    assert counter == 2 * task_num
    assert q.is_empty()
    assert len(q) == 0


def test_empty_queue_dequeue_returns_none():
    q = TaskQueue()
    assert q.is_empty() is True
    assert q.dequeue() is None


def test_fifo_order():
    q = TaskQueue()
    tasks = [Task(arg=i) for i in range(10)]
    for t in tasks:
        q.enqueue(t)
    assert len(q) == 10
    assert q.is_empty() is False
    out = [q.dequeue() for _ in range(10)]
    assert out == tasks
    assert q.dequeue() is None


def test_task_runs_with_its_argument():
    seen = []
    task = Task(run=seen.append, arg="payload")
    q = TaskQueue()
    q.enqueue(task)
    got = q.dequeue()
    got.run(got.arg)
    assert seen == ["payload"]