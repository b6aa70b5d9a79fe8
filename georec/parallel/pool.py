"""
Bounded pool of workers for embarrassingly parallel per-row work.

Rows are split into contiguous ranges, one task per worker, and each
call to map_ranges() blocks until every range has been processed.
Workers are threads sharing the model matrices: the heavy lifting
happens inside numpy, which releases the GIL, so there is no need to
copy matrices to separate processes.
"""

import math
import logging
from multiprocessing.pool import ThreadPool

import psutil

def default_num_workers(fraction=0.95):
    """
    Number of workers to use by default: this fraction of the
    available cores, rounded up.
    """
    num_cores = psutil.cpu_count() or 1
    return int(math.ceil(num_cores*fraction))

def create_tasks(num_rows,num_workers):
    """
    Split rows 0..num_rows-1 into contiguous (start,end) ranges,
    at most one per worker.
    """
    if num_workers <= 0:
        # special marker for sequential run
        num_workers = 1
    rows_per_worker = int(math.ceil(float(num_rows)/num_workers)) or 1
    tasks = []
    for start in range(0,num_rows,rows_per_worker):
        end = min(num_rows,start+rows_per_worker)
        tasks.append((start,end))
    return tasks

class WorkerPool(object):
    """
    Parameters
    ==========
    num_workers : int or None
        Maximum number of concurrent workers. If None use
        default_num_workers(), if 0 or 1 run tasks sequentially
        in the calling thread, which is easier for debugging.
    """

    def __init__(self,num_workers=None):
        if num_workers is None:
            num_workers = default_num_workers()
        if num_workers < 0:
            raise ValueError('num_workers must be non-negative')
        self.num_workers = num_workers
        self._pool = None

    def __str__(self):
        return 'WorkerPool(num_workers={0})'.format(self.num_workers)

    def __enter__(self):
        return self

    def __exit__(self,*exc_info):
        self.close()

    @property
    def is_sequential(self):
        return self.num_workers <= 1

    def map_ranges(self,process,num_rows):
        """
        Call process(start,end) for contiguous ranges covering
        rows 0..num_rows-1 and wait for all of them to complete.

        Returns
        =======
        results : list
            Return values of process() ordered by start row.
        """
        tasks = create_tasks(num_rows,self.num_workers)
        if self.is_sequential or len(tasks) <= 1:
            return [process(start,end) for start,end in tasks]
        if self._pool is None:
            logging.debug('starting pool of %d workers',self.num_workers)
            self._pool = ThreadPool(self.num_workers)
        async_job = self._pool.map_async(lambda task: process(*task),tasks)
        # wait for tasks to complete
        return async_job.get()

    def close(self):
        if self._pool is not None:
            self._pool.close()
            self._pool.join()
            self._pool = None
