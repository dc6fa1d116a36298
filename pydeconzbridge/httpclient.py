# pyDeconzBridge - Async HTTP Client
# -*- coding: utf-8 -*-
"""
 Non-blocking HTTP client for the deCONZ REST API

 Requests are run by a small thread pool on a shared requests.Session so
 http connections to the gateway are re-used. Every call returns a
 concurrent.futures.Future resolving to an HttpResult(status, body) or
 failing with TransportTimeout / TransportFailure.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import requests
from requests import Response

from pydeconzbridge.exceptions import TransportFailure, TransportTimeout
from pydeconzbridge.models import HttpResult

log = logging.getLogger(__name__)


class AsyncHttpClient:
    def __init__(self, poolmaxsize: int = 10, max_workers: int = 4):
        """
        Args:
            poolmaxsize = Pool max size for http connection re-use (persistent
                          connections disabled if zero)
            max_workers = Number of requests that may run at the same time
        """
        self.poolmaxsize = poolmaxsize
        if self.poolmaxsize > 0:
            self.session = requests.Session()
            # noinspection PyUnresolvedReferences
            a = requests.adapters.HTTPAdapter(pool_maxsize=self.poolmaxsize)
            self.session.mount('http://', a)
            self.session.mount('https://', a)
        else:
            # Disable http persistent connections
            self.session = requests
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pydeconzbridge-http")

    def get(self, url: str, timeout: float) -> "Future[HttpResult]":
        return self._executor.submit(self._request, 'get', url, None, timeout)

    def post(self, url: str, body: Optional[str], timeout: float) -> "Future[HttpResult]":
        return self._executor.submit(self._request, 'post', url, body, timeout)

    def _request(self, method: str, url: str, body: Optional[str], timeout: float) -> HttpResult:
        log.debug(f' -- http: {method.upper()} {url}')
        headers = {'Content-type': 'application/json'} if body is not None else None
        try:
            r: Response = self.session.request(method, url, data=body, headers=headers, timeout=timeout)
        except requests.exceptions.Timeout as exc:
            log.debug('ERROR Timeout waiting for gateway at %s' % url)
            raise TransportTimeout(f"Timeout waiting for gateway at {url}") from exc
        except requests.exceptions.ConnectionError as exc:
            log.debug('ERROR Unable to connect to gateway at %s' % url)
            raise TransportFailure(f"Unable to connect to gateway at {url}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            log.debug(f'ERROR Unknown error connecting to gateway at {url}: {exc}')
            raise TransportFailure(f"Request to {url} failed: {exc}") from exc
        log.debug(f"Response Code: {r.status_code}")
        return HttpResult(status=r.status_code, body=r.text)

    def close(self):
        self._executor.shutdown(wait=False)
        if self.session is not requests:
            self.session.close()
