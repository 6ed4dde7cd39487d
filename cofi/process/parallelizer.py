"""
Module description:
Sweeps a collection of entities across a pool of worker threads.
"""

import concurrent.futures as c
import logging as pylog
import math
import os
import threading
import time
from abc import ABC, abstractmethod

from tqdm import tqdm

from cofi.utils import logging
from cofi.utils.config import ParallelizerConfig, validate_config
from cofi.utils.exceptions import WorkerFailure


class Partible(ABC):
    """
    Per-entity worker swept by a Parallelizer.

    `before_run` is called once, then `run` exactly once for every entity of
    the sweep, then `after_run` once. No two concurrent `run` calls receive
    the same entity, so writes keyed by the entity index need no locking.
    """

    def before_run(self):
        pass

    @abstractmethod
    def run(self, entity):
        raise NotImplementedError()

    def after_run(self):
        pass


class Parallelizer:
    """
    Applies a Partible to every element of an ordered collection using a
    fixed pool of threads and static chunking of the index range.

    Failures raised by `run` do not stop the sweep: every entity is still
    visited, then the first failure is raised as a WorkerFailure and
    `after_run` is skipped.
    """

    def __init__(self, num_workers=None, chunk_size=None, verbose=False):
        config = validate_config(ParallelizerConfig, num_workers=num_workers,
                                 chunk_size=chunk_size, verbose=verbose)
        self.num_workers = config.num_workers or os.cpu_count() or 1
        self.chunk_size = config.chunk_size
        self.verbose = config.verbose
        self.logger = logging.get_logger(self.__class__.__name__, pylog.DEBUG)

    def exec(self, entities, partible):
        """Run one sweep of `partible` over `entities`.

        Args:
            entities: Ordered sequence of entities.
            partible (Partible): The worker.

        Raises:
            WorkerFailure: If any `run` call raised.
        """
        entities = list(entities)
        chunks = self._chunks(len(entities))
        worker_name = partible.__class__.__name__

        first_failure = []
        failure_lock = threading.Lock()

        def sweep_chunk(start, stop):
            for position in range(start, stop):
                entity = entities[position]
                try:
                    partible.run(entity)
                except Exception as err:
                    with failure_lock:
                        if not first_failure:
                            first_failure.append((getattr(entity, "index", position), err))
            return stop - start

        start_time = time.perf_counter()
        partible.before_run()

        with c.ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            futures = [executor.submit(sweep_chunk, start, stop) for start, stop in chunks]
            with tqdm(total=len(entities), desc=f"Sweeping {worker_name}", leave=False,
                      disable=not self.verbose) as t:
                for future in c.as_completed(futures):
                    t.update(future.result())

        if first_failure:
            entity_index, err = first_failure[0]
            self.logger.error(
                "Sweep failed",
                extra={"context": {"worker": worker_name, "entity": entity_index, "error": repr(err)}}
            )
            raise WorkerFailure(entity_index, worker_name, err) from err

        partible.after_run()
        self.logger.debug(
            "Sweep completed",
            extra={"context": {
                "worker": worker_name,
                "entities": len(entities),
                "workers": self.num_workers,
                "duration_sec": time.perf_counter() - start_time
            }}
        )

    def _chunks(self, size):
        if not size:
            return []
        chunk_size = self.chunk_size or max(1, math.ceil(size / self.num_workers))
        return [(start, min(start + chunk_size, size)) for start in range(0, size, chunk_size)]
