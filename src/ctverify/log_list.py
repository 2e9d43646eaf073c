import base64
import binascii
import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Iterator, List, Optional

from .config import settings
from .ct_log import CtLog
from .errors import LogClientError, MalformedResponse

logger = logging.getLogger(__name__)

# Published log directories following the v1 log list schema.
LOG_LISTS = {
    "google": "https://www.gstatic.com/ct/log_list/log_list.json",
    "google_all": "https://www.gstatic.com/ct/log_list/all_logs_list.json",
}

_REQUIRED_LOG_FIELDS = ("url", "key", "description", "operated_by", "maximum_merge_delay")


def _strip_url(url: str) -> str:
    if url.startswith("https://"):
        url = url[len("https://"):]
    elif url.startswith("http://"):
        url = url[len("http://"):]
    return url.rstrip("/")


class CtLogList:
    def __init__(self, logs: List[CtLog] = None):
        self.logs = list(logs) if logs is not None else []

    def __iter__(self) -> Iterator[CtLog]:
        return iter(self.logs)

    def __len__(self):
        return len(self.logs)

    def load(self, log_list: Dict[str, Any]) -> bool:
        """Adds the logs of a parsed log list. Nothing is added if any part of the list is malformed."""
        if not isinstance(log_list, dict) or "operators" not in log_list or "logs" not in log_list:
            return False

        operators = {}
        for operator in log_list["operators"]:
            if "id" not in operator or "name" not in operator:
                logger.warning("Log list operator is missing id or name: %s", operator)
                return False
            operators[operator["id"]] = operator["name"]

        logs = []
        for log in log_list["logs"]:
            if any(f not in log for f in _REQUIRED_LOG_FIELDS):
                logger.warning("Log list entry is missing fields: %s", log.get("description"))
                return False
            try:
                public_key = base64.b64decode(log["key"], validate=True)
                log_id = base64.b64decode(log["log_id"], validate=True) if "log_id" in log else None
            except (TypeError, binascii.Error):
                logger.warning("Log list entry has an invalid key or id: %s", log["description"])
                return False
            logs.append(CtLog(log["url"], public_key, log_id=log_id,
                              maximum_merge_delay=log["maximum_merge_delay"],
                              description=log["description"],
                              operators=[operators.get(o) for o in log["operated_by"]]))

        self.logs.extend(logs)
        return True

    def load_file(self, path: str) -> bool:
        with open(path, "r") as f:
            return self.load(json.loads(f.read()))

    def fetch(self, url: str = LOG_LISTS["google"]) -> bool:
        logger.debug("Fetching %s", url)
        request = urllib.request.Request(url, headers={"User-Agent": settings.user_agent})
        try:
            with urllib.request.urlopen(request, timeout=settings.http_timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            raise LogClientError("{} returned HTTP {}".format(url, e.code), status=e.code) from e
        except urllib.error.URLError as e:
            raise LogClientError("Unable to reach {}: {}".format(url, e.reason)) from e
        except http.client.HTTPException as e:
            raise LogClientError("Broken response from {}: {!r}".format(url, e)) from e
        try:
            return self.load(json.loads(raw))
        except ValueError as e:
            raise MalformedResponse("{} did not return JSON".format(url)) from e

    def find_by_id(self, log_id: bytes) -> Optional[CtLog]:
        for log in self.logs:
            if log.log_id == log_id:
                return log
        return None

    def find_by_url(self, url: str) -> Optional[CtLog]:
        search = _strip_url(url)
        for log in self.logs:
            if _strip_url(log.url) == search:
                return log
        return None

    def find_by_description(self, description: str) -> Optional[CtLog]:
        """Case insensitive substring match, the first matching log wins."""
        search = description.lower()
        for log in self.logs:
            if log.description is not None and search in log.description.lower():
                return log
        return None

    def generate_ids(self) -> bool:
        """Recomputes every log id from its public key, replacing ids read from the list."""
        for log in self.logs:
            log.generate_id()
        return True
