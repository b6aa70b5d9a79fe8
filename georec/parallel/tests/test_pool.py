import threading
import numpy as np
import pytest
from numpy.testing import assert_array_equal

from georec.parallel.pool import WorkerPool, create_tasks, default_num_workers

def check_tasks(tasks,num_rows):
    covered = []
    for start,end in tasks:
        assert start < end
        covered.extend(range(start,end))
    assert covered == list(range(num_rows))

def test_create_tasks():
    for num_rows in [1,5,10,11,100]:
        for num_workers in [0,1,2,3,7,16]:
            tasks = create_tasks(num_rows,num_workers)
            check_tasks(tasks,num_rows)
            assert len(tasks) <= max(num_workers,1)

def test_create_tasks_no_rows():
    assert create_tasks(0,4) == []

def test_default_num_workers():
    assert default_num_workers() >= 1
    assert default_num_workers(fraction=1e-6) == 1

def test_invalid_num_workers():
    with pytest.raises(ValueError):
        WorkerPool(-1)

def test_sequential_runs_in_calling_thread():
    pool = WorkerPool(1)
    assert pool.is_sequential
    threads = pool.map_ranges(lambda start,end: threading.current_thread(),10)
    assert threads == [threading.current_thread()]

def test_map_ranges():
    x = np.zeros(101)
    def process(start,end):
        x[start:end] = np.arange(start,end)
        return end-start
    with WorkerPool(4) as pool:
        assert not pool.is_sequential
        counts = pool.map_ranges(process,len(x))
        # the pool is reused across calls
        pool.map_ranges(process,len(x))
    assert sum(counts) == len(x)
    assert len(counts) == 4
    assert_array_equal(x,np.arange(101))

def test_worker_errors_propagate():
    def process(start,end):
        raise FloatingPointError('overflow')
    with WorkerPool(2) as pool:
        with pytest.raises(FloatingPointError):
            pool.map_ranges(process,10)
