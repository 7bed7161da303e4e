"""
Chain annotation jobs.

Each distinct chain sequence is submitted to InterProScan and HMMER (EBI web
services) early in the run. The jobs run concurrently with the rest of the
ingestion and each one persists its result as soon as it resolves. They are
awaited at the end of the run, racing the abort flag; an abort abandons the
jobs still pending.

Abandoned jobs are only cancelled locally; the EBI jobs themselves keep
running until the services expire them.

Chains are kept or replaced as a whole set. A run that keeps the existing
chains only submits the chains missing from it, which completes a set left
partial by an aborted run; a chain whose sequence changed is not detected.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import aiohttp

from mdloader.config.settings import AnnotationSettings
from mdloader.core.retry import API_RETRY_POLICY, RetryManager, RetryPolicy
from mdloader.exceptions import AnnotationError, RetryError
from mdloader.load.abort import AbortMonitor
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.annotations")

INTERPROSCAN_URL = "https://www.ebi.ac.uk/Tools/services/rest/iprscan5"
HMMER_URL = "https://www.ebi.ac.uk/Tools/hmmer"

# InterProScan rejects shorter sequences
MIN_SEQUENCE_SIZE = 11

INTERPROSCAN_FAILED = ("FAILURE", "ERROR", "NOT_FOUND")

JSON_HEADERS = {"Accept": "application/json"}


class AnnotationClient(Protocol):
    """Produces the annotation document of one chain sequence."""

    async def annotate(self, chain: str, sequence: str) -> dict[str, Any]: ...


class EbiAnnotationClient:
    """
    InterProScan + HMMER client.

    Every HTTP call is retried under the API retry policy; status polling
    waits ``status_interval`` seconds, give or take ``status_jitter``.
    Sequences shorter than MIN_SEQUENCE_SIZE are not submitted and yield
    ``{"sequence": ...}`` only.

    Args:
        settings: Annotation settings (email, intervals, maximum wait)
        policy: Retry policy for each HTTP call
        interproscan_url: InterProScan REST base URL
        hmmer_url: HMMER web base URL
    """

    def __init__(
        self,
        settings: AnnotationSettings,
        *,
        policy: RetryPolicy = API_RETRY_POLICY,
        retry: RetryManager | None = None,
        interproscan_url: str = INTERPROSCAN_URL,
        hmmer_url: str = HMMER_URL,
        timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.policy = policy
        self.retry = retry or RetryManager(sleep=sleep)
        self.interproscan_url = interproscan_url.rstrip("/")
        self.hmmer_url = hmmer_url.rstrip("/")
        self.timeout = timeout
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _wait_time(self) -> float:
        jitter = self.settings.status_jitter
        return self.settings.status_interval + random.uniform(-jitter, jitter)

    async def _request(self, method: str, url: str, *, as_json: bool = False, **kwargs: Any) -> Any:
        if self._session is None:
            await self.connect()
        async with self._session.request(method, url, **kwargs) as response:
            response.raise_for_status()
            if as_json:
                return await response.json(content_type=None)
            return (await response.text()).strip()

    async def _call(self, name: str, method: str, url: str, **kwargs: Any) -> Any:
        return await self.retry.execute(self._request, method, url, policy=self.policy, name=name, **kwargs)

    # --- InterProScan --------------------------------------------------------

    async def submit_interproscan(self, chain: str, fasta: str) -> str:
        data = {"email": self.settings.email or "", "title": f"chain {chain}", "sequence": fasta}
        return await self._call("interproscan submit", "POST", f"{self.interproscan_url}/run", data=data)

    async def wait_interproscan(self, job_id: str) -> dict:
        status = None
        while status != "FINISHED":
            if status is not None:
                await self._sleep(self._wait_time())
            status = await self._call("interproscan status", "GET", f"{self.interproscan_url}/status/{job_id}")
            if status in INTERPROSCAN_FAILED:
                raise AnnotationError(job_id, f"InterProScan job ended with status {status}")
            if status not in ("RUNNING", "QUEUED", "FINISHED"):
                logger.warning(f"Unexpected status '{status}' for InterProScan job {job_id}")
        return await self._call(
            "interproscan result", "GET", f"{self.interproscan_url}/result/{job_id}/json", as_json=True
        )

    # --- HMMER ---------------------------------------------------------------

    async def submit_hmmer(self, fasta: str) -> dict:
        return await self._call(
            "hmmer submit",
            "POST",
            f"{self.hmmer_url}/search/phmmer",
            data={"seqdb": "pdb", "seq": fasta},
            headers=JSON_HEADERS,
            as_json=True,
        )

    async def wait_hmmer(self, job: dict) -> dict:
        # Interactive searches answer directly, batch ones must be polled
        if job.get("status") != "PEND":
            return job
        uuid = job.get("uuid")
        if not uuid:
            raise AnnotationError("hmmer", "HMMER accepted the search without a job id")
        status = None
        while status != "DONE":
            if status is not None:
                await self._sleep(self._wait_time())
            result = await self._call(
                "hmmer status", "GET", f"{self.hmmer_url}/results/{uuid}", headers=JSON_HEADERS, as_json=True
            )
            status = result.get("status")
            if status in ("ERROR", "FAIL"):
                raise AnnotationError(uuid, f"HMMER job ended with status {status}")
        return await self._call(
            "hmmer result", "GET", f"{self.hmmer_url}/results/{uuid}.1", headers=JSON_HEADERS, as_json=True
        )

    async def annotate(self, chain: str, sequence: str) -> dict[str, Any]:
        if len(sequence) < MIN_SEQUENCE_SIZE:
            logger.info(f"Chain {chain} is too short to be analysed ({len(sequence)} residues)")
            return {"sequence": sequence}

        fasta = f">chain {chain}\n{sequence}"
        try:
            interproscan_job = await self.submit_interproscan(chain, fasta)
            hmmer_job = await self.submit_hmmer(fasta)
            logger.info(f"Submitted chain {chain}: InterProScan {interproscan_job}, HMMER {hmmer_job.get('uuid')}")
            async with asyncio.timeout(self.settings.max_wait):
                interproscan, hmmer = await asyncio.gather(
                    self.wait_interproscan(interproscan_job), self.wait_hmmer(hmmer_job)
                )
        except TimeoutError as e:
            raise AnnotationError(chain, f"no result within {self.settings.max_wait:.0f}s") from e
        except AnnotationError as e:
            raise AnnotationError(chain, e.reason) from e
        except (RetryError, aiohttp.ClientError) as e:
            raise AnnotationError(chain, str(e)) from e
        return {"sequence": sequence, "interproscan": interproscan, "hmmer": hmmer}


class ChainAnnotationPoller:
    """
    Runs annotation jobs alongside the ingestion and persists their results.

    Each job persists its own result as soon as the annotation resolves, so
    results reached before an abort are kept whatever phase the run is in.
    A failed job is logged and skipped.

    Args:
        client: Annotation client the jobs run against
        monitor: Abort monitor raced against the jobs during collection
        persist: Stores the annotation document of one chain key
        poll_interval: Seconds between abort checks while waiting
    """

    def __init__(
        self,
        client: AnnotationClient,
        monitor: AbortMonitor,
        persist: Callable[[str, dict[str, Any]], Awaitable[Any]],
        poll_interval: float = 1.0,
    ) -> None:
        self.client = client
        self.monitor = monitor
        self.persist = persist
        self.poll_interval = poll_interval
        self.persisted: list[str] = []
        self._jobs: dict[asyncio.Task, str] = {}
        self._storing: set[str] = set()

    def submit(self, chain_key: str, sequence: str) -> asyncio.Task:
        """Start annotating a sequence in the background and return its job."""
        task = asyncio.create_task(self._run(chain_key, sequence), name=f"annotate chain {chain_key}")
        self._jobs[task] = chain_key
        logger.debug(f"Submitted annotation job for chain {chain_key}")
        return task

    async def _run(self, chain_key: str, sequence: str) -> bool:
        try:
            document = await self.client.annotate(chain_key, sequence)
        except AnnotationError as e:
            logger.error(f"Skipping chain {chain_key}: {e.reason}")
            return False
        # Once storing starts the job is no longer abandoned
        self._storing.add(chain_key)
        await self.persist(chain_key, document)
        self.persisted.append(chain_key)
        logger.info(f"Annotation of chain {chain_key} stored ({len(self.pending)} pending)")
        return True

    @property
    def pending(self) -> list[str]:
        return [key for task, key in self._jobs.items() if not task.done() and key not in self._storing]

    async def collect(self) -> list[str]:
        """
        Wait for every job to finish.

        Between wake-ups (at most ``poll_interval`` apart) the abort flag is
        checked; when it is set the pending jobs are abandoned and
        LoadAborted propagates. Errors raised while storing a result
        propagate as well.

        Returns:
            Chain keys whose annotation was persisted
        """
        pending = set(self._jobs)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, timeout=self.poll_interval, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    task.result()
                if pending:
                    await self.monitor.check("chain annotations")
        finally:
            self.abandon()
        return list(self.persisted)

    async def close(self) -> None:
        """Abandon unresolved jobs and wait for every task to wind down."""
        self.abandon()
        results = await asyncio.gather(*self._jobs, return_exceptions=True)
        for task, result in zip(self._jobs, results):
            if isinstance(result, Exception):
                logger.error(f"Annotation job for chain {self._jobs[task]} failed: {result}")

    def abandon(self) -> None:
        """Cancel the local tasks of every job that has not resolved yet."""
        abandoned = self.pending
        for task, key in self._jobs.items():
            if not task.done() and key not in self._storing:
                task.cancel()
        if abandoned:
            logger.warning(f"Abandoned annotation jobs for chains: {', '.join(abandoned)}")
