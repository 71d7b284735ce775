"""
Status Normalizer

Maps a raw status record (already extracted by a strategy) to a
StatusSnapshot. The same rules apply whichever endpoint answered:

1. complete     raw complete/isComplete true, state/status is a completion
                synonym, or percentage/progress reaches 100
2. percentage   first of percentage, progress, percentComplete;
                else 100 if complete else 0; clamped to [0, 100]
3. state        first of state, status, exportState;
                else "COMPLETE" if complete else "RUNNING"
4. package      false if raw packageAvailable is false; otherwise true when
                raw says true, a downloadUrl exists, or the job is complete
5. two-phase    a job the server calls complete whose package is not
                confirmed (and whose state is not PACKAGE CREATION FAILED)
                is reported as CREATING PACKAGE, not complete. A snapshot
                already labelled CREATING PACKAGE stays incomplete.
6. authority    raw complete == true AND packageAvailable == true wins
                over step 5
7. downloadUrl  synthesized from the strategy template when absent and the
                job is complete

Normalizing a snapshot's own to_raw() output yields the same snapshot.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple, Union
import logging
import math

from .models import (
    CREATING_PACKAGE_LABEL,
    PACKAGE_CREATION_FAILED_LABEL,
    EndpointChoice,
    ExportState,
    StatusSnapshot,
    is_completion_label,
    state_from_label,
)

logger = logging.getLogger(__name__)

_ITEM_NAME_FIELDS = ("name", "displayName", "systemName", "description")


def _first_defined(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return None


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    return None if math.isnan(number) else number


def _item_label(item: Any) -> str:
    if isinstance(item, Mapping):
        for name in _ITEM_NAME_FIELDS:
            if item.get(name):
                return str(item[name])
    return str(item)


def _items(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return (_item_label(value),)
    return tuple(_item_label(item) for item in value)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class StatusNormalizer:
    """Stateless; one instance can serve any number of jobs."""

    def normalize(
        self,
        raw: Union[Mapping[str, Any], StatusSnapshot, None],
        *,
        source: Optional[EndpointChoice] = None,
        fallback_download_url: Optional[str] = None
    ) -> StatusSnapshot:
        if isinstance(raw, StatusSnapshot):
            source = source or raw.source
            raw = raw.to_raw()

        if not raw:
            return StatusSnapshot(
                state=ExportState.UNKNOWN,
                state_label=ExportState.UNKNOWN.value,
                percentage=0,
                package_available=False,
                complete=False,
                source=source,
            )

        raw_flag = raw.get("complete") is True or raw.get("isComplete") is True
        raw_package = raw.get("packageAvailable")
        raw_state = _first_defined(raw, "state", "status", "exportState")
        raw_percent = _as_number(_first_defined(raw, "percentage", "progress", "percentComplete"))

        # 1. complete
        complete = (
            raw_flag
            or is_completion_label(raw.get("state"))
            or is_completion_label(raw.get("status"))
            or (_as_number(raw.get("percentage")) or 0) >= 100
            or (_as_number(raw.get("progress")) or 0) >= 100
        )

        # 2. percentage
        if raw_percent is None:
            raw_percent = 100.0 if complete else 0.0
        percentage = int(round(min(100.0, max(0.0, raw_percent))))

        # 3. state
        label = str(raw_state) if raw_state is not None else ("COMPLETE" if complete else "RUNNING")

        # 4. package availability
        download_url = _text(raw.get("downloadUrl"))
        package_available = raw_package is not False and (
            raw_package is True or download_url is not None or complete
        )

        authoritative = raw.get("complete") is True and raw_package is True
        if authoritative:
            # 6. server confirmed both phases
            complete = True
            package_available = True
        else:
            # 5. two-phase override
            not_failed = label.upper() != PACKAGE_CREATION_FAILED_LABEL
            unconfirmed = not package_available or (raw_flag and raw_package is not True)
            if complete and unconfirmed and not_failed:
                logger.debug("[STATUS] Export complete but package still being created")
                label = CREATING_PACKAGE_LABEL
                complete = False
            if label.upper() == CREATING_PACKAGE_LABEL:
                complete = False

        state = state_from_label(label)
        if state is ExportState.FAILED and not authoritative:
            complete = False

        # 7. download URL
        if download_url is None and complete and fallback_download_url:
            download_url = fallback_download_url

        return StatusSnapshot(
            state=state,
            state_label=label,
            percentage=percentage,
            package_available=package_available,
            complete=complete,
            current=_items(_first_defined(raw, "current", "currentItems")),
            queued=_items(_first_defined(raw, "queued", "queuedItems")),
            message=_text(_first_defined(raw, "message", "statusMessage")),
            error=_text(_first_defined(raw, "error", "errorMessage")),
            download_url=download_url,
            source=source,
        )
