import asyncio
from .client import RancherClient
from .engine import UpgradeEngine
from .logger import get_logger
from .models import DeploymentResult, FanOutResult

MAX_CONCURRENCY = 20


class FanOutExecutor:
    def __init__(self, client=None, poll_interval_s=1.0, max_concurrency=MAX_CONCURRENCY):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.client = client
        self.poll_interval_s = poll_interval_s
        self.max_concurrency = max_concurrency
        self.logger = get_logger("fanout")

    def split(self, request):
        """One request per endpoint, every other field copied as is"""
        return [request.derive(target_endpoint=endpoint) for endpoint in request.endpoints()]

    async def _run_target(self, engine, request, result):
        endpoint = request.target_endpoint
        result.history.append({"event": "target_start", "endpoint": endpoint})
        try:
            snapshot = await engine.execute(request)
        except Exception as e:
            self.logger.error(f"{request.action} failed for {endpoint}: {e}")
            result.history.append({"event": "target_failed", "endpoint": endpoint, "error": str(e)})
            return FanOutResult(endpoint=endpoint, succeeded=False, error=str(e))

        result.history.append({"event": "target_succeeded", "endpoint": endpoint})
        return FanOutResult(endpoint=endpoint, succeeded=True, state=snapshot.state)

    async def _run_bounded(self, semaphore, engine, request, result):
        async with semaphore:
            return await self._run_target(engine, request, result)

    async def run(self, request):
        """Run the request against every target endpoint and aggregate outcomes"""
        # A client built here is owned by this run and closed with it
        client = self.client if self.client else RancherClient()
        try:
            return await self._run(client, request)
        finally:
            if client is not self.client:
                client.close()

    async def _run(self, client, request):
        result = DeploymentResult(success=False, action=request.action)
        engine = UpgradeEngine(client, self.poll_interval_s, emit=result.history.append)
        targets = self.split(request)

        if not request.is_fan_out():
            outcomes = [await self._run_target(engine, targets[0], result)]
        else:
            self.logger.info(
                f"Running {request.action} on {len(targets)} targets, at most {self.max_concurrency} at a time"
            )
            semaphore = asyncio.Semaphore(self.max_concurrency)
            outcomes = await asyncio.gather(
                *(self._run_bounded(semaphore, engine, r, result) for r in targets)
            )

        result.results = list(outcomes)
        result.success = all(o.succeeded for o in outcomes)

        if result.success:
            self.logger.info(f"SUCCESS: {request.action} completed on {len(outcomes)} target(s)")
        else:
            self.logger.warning(
                f"FAILED: {len(result.failed)} of {len(outcomes)} target(s) failed: {', '.join(result.failed)}"
            )
        return result
