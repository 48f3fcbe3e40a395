# -*- coding: utf-8 -*-
"""
Run many independent backtests on a bounded thread pool.

Every job gets its own strategy clone and, through the engine, its own
Account, so jobs share nothing mutable.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tradeval.backtesting.engine import BacktestEngine, BacktestResult
from tradeval.signals.base import Strategy


logger = logging.getLogger(__name__)


@dataclass
class BacktestJob:
    strategy: Strategy
    symbol: str
    timeframe: str
    start_date: Any
    end_date: Any
    initial_capital: float = 10000
    config: Optional[Dict[str, Any]] = None


@dataclass
class PoolOutcome:
    """Result of one job; ``error`` is set when the job raised."""

    job: BacktestJob
    result: Optional[BacktestResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BacktestPool:
    """Thread pool front-end for BacktestEngine."""

    def __init__(self, backtest_engine: BacktestEngine, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.backtest_engine = backtest_engine
        self.max_workers = max_workers

    def _run_job(self, job: BacktestJob) -> BacktestResult:
        return self.backtest_engine.run_backtest(
            job.strategy.clone(),
            job.symbol,
            job.timeframe,
            job.start_date,
            job.end_date,
            initial_capital=job.initial_capital,
            config=job.config,
        )

    def run_all(self, jobs: List[BacktestJob]) -> List[PoolOutcome]:
        """
        Run all jobs and return their outcomes in submission order.

        A failing job does not cancel the others; its exception is captured
        on the outcome.
        """
        outcomes: List[PoolOutcome] = [PoolOutcome(job=job) for job in jobs]
        if not jobs:
            return outcomes

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._run_job, job): index for index, job in enumerate(jobs)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    outcomes[index].result = future.result()
                except Exception as e:
                    job = jobs[index]
                    logger.error(f"Backtest {job.strategy.id} {job.symbol}/{job.timeframe} failed: {e}")
                    outcomes[index].error = e

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(f"Backtest pool finished: {len(jobs) - failed}/{len(jobs)} succeeded")
        return outcomes
