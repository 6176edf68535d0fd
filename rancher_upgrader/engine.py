import asyncio
from .client import RancherClient
from .errors import ConfigurationError, UpgraderError, WaitTimeoutError
from .image import mutate_launch_config
from .logger import get_logger
from .models import Action, ServiceState

UPGRADE_BATCH_SIZE = 1
UPGRADE_INTERVAL_MILLIS = 2000
UPGRADE_START_FIRST = True
WAIT_FAILED_MESSAGE = "waiting for state failed"


def _discard(event):
    return None


def build_upgrade_body(launch_config):
    """Wrap a launch configuration in the in-service rollout strategy"""
    return {
        "inServiceStrategy": {
            "batchSize": UPGRADE_BATCH_SIZE,
            "intervalMillis": UPGRADE_INTERVAL_MILLIS,
            "startFirst": UPGRADE_START_FIRST,
            "launchConfig": launch_config,
        }
    }


class UpgradeEngine:
    def __init__(self, client=None, poll_interval_s=1.0, emit=None):
        self.client = client if client else RancherClient()
        self.poll_interval_s = poll_interval_s
        self.emit = emit if emit else _discard
        self.logger = get_logger("engine")

    async def _fetch(self, request):
        return await asyncio.to_thread(
            self.client.fetch_state, request.target_endpoint, request.auth
        )

    async def _invoke(self, request, action, body=None):
        self.emit({"event": "action_called", "endpoint": request.target_endpoint, "action": action.value})
        return await asyncio.to_thread(
            self.client.invoke_action, request.target_endpoint, action.value, request.auth, body
        )

    async def execute(self, request):
        """Run the request's action against its (single) target"""
        try:
            action = Action(request.action)
        except ValueError:
            self.logger.error(f"Invalid action '{request.action}'")
            raise ConfigurationError(
                f"Invalid action '{request.action}', try use upgrade, finishupgrade or rollback",
                url=request.target_endpoint,
            ) from None

        if action is Action.UPGRADE:
            return await self.upgrade(request)
        if action is Action.FINISH_UPGRADE:
            return await self.finish_upgrade(request)
        return await self.rollback(request)

    async def upgrade(self, request):
        """Push a rewritten launch configuration with the in-service strategy"""
        current = await self._fetch(request)
        launch_config = current.launch_config

        if request.force_finish and current.state == ServiceState.UPGRADED.value:
            self.logger.info(f"Service at {request.target_endpoint} is upgraded, finishing first")
            self.emit({"event": "force_finish", "endpoint": request.target_endpoint})
            await self.finish_upgrade(
                request.derive(action=Action.FINISH_UPGRADE.value, wait=True)
            )
            self.logger.info("Finished!")

        mutated = mutate_launch_config(launch_config, request)
        snapshot = await self._invoke(request, Action.UPGRADE, build_upgrade_body(mutated))
        self.logger.info(f"Upgrade called on {request.target_endpoint}")

        if request.wait:
            return await self.wait_for(request, ServiceState.UPGRADED.value, Action.UPGRADE)
        return snapshot

    async def finish_upgrade(self, request):
        snapshot = await self._invoke(request, Action.FINISH_UPGRADE)
        self.logger.info(f"Finish upgrade called on {request.target_endpoint}")

        if request.wait:
            return await self.wait_for(request, ServiceState.ACTIVE.value, Action.FINISH_UPGRADE)
        return snapshot

    async def rollback(self, request):
        snapshot = await self._invoke(request, Action.ROLLBACK)
        self.logger.info(f"Rollback called on {request.target_endpoint}")

        if request.wait:
            return await self.wait_for(request, ServiceState.ACTIVE.value, Action.ROLLBACK)
        return snapshot

    async def wait_for(self, request, expected_state, action):
        """Poll until the service reaches expected_state.

        The budget is request.max_wait_seconds poll cycles. If the service stops
        transitioning or the budget runs out first, a rollback with wait is run
        against the same target and WaitTimeoutError is raised. A rollback's own
        wait never compensates: it returns the last snapshot whatever its state.
        """
        endpoint = request.target_endpoint
        budget = request.max_wait_seconds
        self.logger.info(f"Waiting for {endpoint} to become {expected_state}")
        self.emit({"event": "wait_start", "endpoint": endpoint, "expected_state": expected_state})

        cycles = 0
        while True:
            await asyncio.sleep(self.poll_interval_s)
            cycles += 1
            snapshot = await self._fetch(request)
            self.logger.debug(
                f"Poll {cycles} on {endpoint}: state={snapshot.state} transitioning={snapshot.transitioning}"
            )
            if snapshot.state == expected_state:
                self.logger.info(f"{endpoint} reached {expected_state} after {cycles} polls")
                self.emit({"event": "state_reached", "endpoint": endpoint, "state": expected_state, "polls": cycles})
                return snapshot
            if not snapshot.transitioning or cycles > budget:
                break

        if not snapshot.transitioning and snapshot.transitioning_message:
            message = snapshot.transitioning_message
        else:
            message = WAIT_FAILED_MESSAGE

        self.emit({
            "event": "wait_failed",
            "endpoint": endpoint,
            "expected_state": expected_state,
            "state": snapshot.state,
            "message": message,
        })

        if action is Action.ROLLBACK:
            self.logger.warning(f"Rollback of {endpoint} ended in state '{snapshot.state}': {message}")
            return snapshot

        self.logger.error(f"Waiting for {expected_state} on {endpoint} failed: {message}, rolling back")
        self.emit({"event": "compensating_rollback", "endpoint": endpoint})
        timeout = WaitTimeoutError(
            message,
            url=endpoint,
            expected_state=expected_state,
            last_state=snapshot.state,
        )
        try:
            await self.rollback(request.derive(action=Action.ROLLBACK.value, wait=True))
        except UpgraderError as exc:
            self.logger.error(f"Compensating rollback of {endpoint} failed: {exc}")
            self.emit({"event": "compensating_rollback_failed", "endpoint": endpoint, "error": str(exc)})
            raise timeout from exc

        raise timeout
