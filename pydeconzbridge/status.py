# pyDeconzBridge - Status Reporting
# -*- coding: utf-8 -*-
"""
 Status sink for bridge state changes

 The bridge never raises across its public methods; it reports what
 happened through a StatusSink. StatusSink logs every change and keeps the
 latest report. Pass a callback to be told about each change as well.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from pydeconzbridge.models import ThingStatus, ThingStatusDetail

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusReport:
    status: ThingStatus
    detail: ThingStatusDetail = ThingStatusDetail.NONE
    message: Optional[str] = None

    def __str__(self):
        text = self.status.value
        if self.detail is not ThingStatusDetail.NONE:
            text += " (%s)" % self.detail.value
        if self.message:
            text += ": " + self.message
        return text


class StatusSink:
    def __init__(self, name: str = "bridge", callback: Optional[Callable[[StatusReport], None]] = None):
        self.name = name
        self.callback = callback
        self._lock = threading.Lock()
        self._current = StatusReport(ThingStatus.OFFLINE)
        self.history: Deque[StatusReport] = deque(maxlen=100)

    @property
    def current(self) -> StatusReport:
        with self._lock:
            return self._current

    def update_status(self, status: ThingStatus, detail: ThingStatusDetail = ThingStatusDetail.NONE,
                      message: Optional[str] = None):
        report = StatusReport(status, detail, message)
        with self._lock:
            self._current = report
            self.history.append(report)
        if status is ThingStatus.ONLINE:
            log.info(f"{self.name}: {report}")
        else:
            log.debug(f"{self.name}: {report}")
        if self.callback:
            try:
                self.callback(report)
            except Exception:
                log.exception(f"{self.name}: status callback failed")
