# pyDeconzBridge - API Key Pairing
# -*- coding: utf-8 -*-
"""
 Requests an API key from the gateway

 The gateway only hands out a key while pairing is unlocked (the
 "Authenticate app" button in the gateway UI). Until then it answers 403
 and the request is repeated every POLL_FREQUENCY_SEC seconds. Once a key
 is issued it is persisted and the bridge continues with its state.
"""
import json
import logging
from concurrent.futures import Future
from typing import Any, Callable

from pydeconzbridge.config import ConfigStore
from pydeconzbridge.exceptions import ProtocolError
from pydeconzbridge.httpclient import AsyncHttpClient
from pydeconzbridge.models import HttpResult, ThingStatus, ThingStatusDetail, parse_api_key_response
from pydeconzbridge.scheduler import POLL_FREQUENCY_SEC, DeferredTask, Scheduler
from pydeconzbridge.status import StatusSink

log = logging.getLogger(__name__)


class AuthenticationFlow:
    def __init__(self, http: AsyncHttpClient, store: ConfigStore, status: StatusSink, scheduler: Scheduler,
                 deferred: DeferredTask, on_api_key: Callable[[], Any],
                 poll_interval: float = POLL_FREQUENCY_SEC, devicetype: str = "pydeconzbridge"):
        self.http = http
        self.store = store
        self.status = status
        self.scheduler = scheduler
        self.deferred = deferred
        self.on_api_key = on_api_key
        self.poll_interval = poll_interval
        self.devicetype = devicetype

    def request_api_key(self) -> Future:
        """
        Ask the gateway for a new API key. The URL carries no key.

        Returns a future that completes once the response has been handled.
        """
        self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.CONFIGURATION_PENDING,
                                  "Requesting API Key")
        self.deferred.cancel()
        config = self.store.config
        url = config.build_url()
        payload = json.dumps({"devicetype": self.devicetype})
        response = self.http.post(url, payload, config.timeout)
        return self.scheduler.then(response, self._handle_response)

    def _handle_response(self, done: Future):
        try:
            self._parse_api_key_response(done.result())
        except Exception as exc:
            self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.COMMUNICATION_ERROR, str(exc))
            log.warning(f"Authorisation failed: {exc}")

    def _parse_api_key_response(self, r: HttpResult):
        if r.status == 403:
            self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.CONFIGURATION_PENDING,
                                      "Allow authentication for 3rd party apps. "
                                      "Trying again in %s seconds" % self.poll_interval)
            self.deferred.schedule(self.request_api_key, self.poll_interval)
        elif r.status == 200:
            apikey = parse_api_key_response(r.body)
            self.store.persist_api_key(apikey)
            log.debug("API key received and stored")
            self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.CONFIGURATION_PENDING,
                                      "Waiting for configuration")
            self.on_api_key()
        else:
            log.error(f"Unexpected status {r.status} for authorization request: {r.body}")
            raise ProtocolError("unexpected status for authorization")
