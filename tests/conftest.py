import threading
import time
from rancher_upgrader.errors import RemoteStatusError
from rancher_upgrader.models import ServiceSnapshot

SERVICE_URL = "http://rancher:8080/v1/projects/1a5/services/1s7"


def service_doc(state, transitioning="no", message=None, image="docker:nginx:1.19", environment=None):
    """Minimal Rancher service resource"""
    doc = {
        "id": "1s7",
        "type": "service",
        "state": state,
        "transitioning": transitioning,
        "launchConfig": {
            "imageUuid": image,
            "environment": environment if environment is not None else {"OLD": "1"},
            "ports": ["80:80/tcp"],
            "labels": {"io.rancher.container.pull_image": "always"},
        },
    }
    if message is not None:
        doc["transitioningMessage"] = message
    return doc


class FakeRancherClient:
    """Scripted stand-in for RancherClient.

    Each URL has a queue of documents served by fetch_state; the last one is
    repeated once the queue runs dry.
    """

    def __init__(self, scripts=None, fail_urls=None, delay=0.0):
        self.scripts = {url: list(docs) for url, docs in (scripts or {}).items()}
        self.fail_urls = set(fail_urls or ())
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _enter(self):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _exit(self):
        with self._lock:
            self.in_flight -= 1

    def _next_doc(self, url):
        queue = self.scripts.setdefault(url, [service_doc("active")])
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def fetch_state(self, url, auth=None):
        with self._lock:
            self.calls.append(("GET", url, None, None))
            doc = self._next_doc(url)
        return ServiceSnapshot(doc)

    def invoke_action(self, url, action, auth=None, body=None):
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            with self._lock:
                self.calls.append(("POST", url, action, body))
            if url in self.fail_urls:
                raise RemoteStatusError(f"POST {url}?action={action}: HTTP 500", status=500, url=url)
            return ServiceSnapshot({"id": "1s7", "state": "upgrading", "transitioning": "yes"})
        finally:
            self._exit()

    def actions(self, url=None):
        return [c[2] for c in self.calls if c[0] == "POST" and (url is None or c[1] == url)]

    def bodies(self, action):
        return [c[3] for c in self.calls if c[0] == "POST" and c[2] == action]
