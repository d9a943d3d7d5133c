"""JotForm submissions API source."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from core.ingest.models import RawRecord
from core.sources.base import DEFAULT_TIMEOUT_SECONDS, http_client
from core.utils.errors import SourceFetchError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.sources")

DEFAULT_API_HOST = "api.jotform.com"
DEFAULT_LIMIT = 50
_DATE_PARTS = ("day", "month", "year")


class JotFormRecordSource:
    """Fetch the most recent submissions of one form, returned oldest first."""

    name = "jotform"

    def __init__(
        self,
        form_id: str,
        api_key: str,
        *,
        api_host: str = DEFAULT_API_HOST,
        limit: int = DEFAULT_LIMIT,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._form_id = form_id
        self._api_key = api_key
        self._api_host = api_host
        self._limit = limit
        self._client = client
        self._timeout = timeout

    def fetch(self) -> list[RawRecord]:
        log_event(logger, logging.INFO, "jotform_fetch", form_id=self._form_id, limit=self._limit)
        content = self._get(
            f"/form/{self._form_id}/submissions",
            {"limit": str(self._limit), "orderby": "created_at"},
        )
        if not isinstance(content, list):
            raise SourceFetchError("Unexpected submissions payload shape", source=self.name)

        # The API lists newest first.
        return [flatten_submission(item) for item in reversed(content) if isinstance(item, Mapping)]

    def fetch_submission(self, submission_id: str) -> RawRecord:
        content = self._get(f"/submission/{submission_id}", {})
        if not isinstance(content, Mapping):
            raise SourceFetchError("Unexpected submission payload shape", source=self.name)
        return flatten_submission(content)

    def _get(self, path: str, params: dict[str, str]) -> Any:
        url = f"https://{self._api_host}{path}"
        try:
            with http_client(self._client, self._timeout) as client:
                response = client.get(url, params={"apiKey": self._api_key, **params})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(f"JotForm request failed: {exc}", source=self.name) from exc

        if not isinstance(payload, Mapping):
            raise SourceFetchError("Unexpected JotForm response", source=self.name)
        return payload.get("content")


def flatten_submission(submission: Mapping[str, Any]) -> RawRecord:
    """Flatten a submission's answers into a label -> text mapping.

    Each answer is keyed by its field name, else its question text, else
    ``q<key>``. Two bookkeeping keys are added: ``_submission_id`` and
    ``_created_at``.
    """

    values: dict[str, str] = {}
    answers = submission.get("answers")
    if isinstance(answers, Mapping):
        for key, answer in answers.items():
            if not isinstance(answer, Mapping):
                continue
            label = answer.get("name") or answer.get("text") or f"q{key}"
            value = _first_present(answer, ("answer", "prettyFormat", "text"))
            values[str(label)] = answer_text(value)
    else:
        for key, value in submission.items():
            if isinstance(value, (str, int, float)):
                values[str(key)] = str(value)

    submission_id = submission.get("id") or submission.get("submission_id")
    values["_submission_id"] = str(submission_id or "")
    values["_created_at"] = str(submission.get("created_at") or "")
    return RawRecord(values=values, record_id=str(submission_id) if submission_id else None)


def parse_webhook_payload(payload: Mapping[str, Any]) -> tuple[str | None, Mapping[str, Any]]:
    """Return the submission id and the best submission-shaped body of a webhook call.

    JotForm posts form fields with the answers serialized as JSON under
    ``rawRequest``; plain JSON bodies are accepted too.
    """

    submission_id = None
    for key in ("submission_id", "submissionID", "id", "sid"):
        if payload.get(key):
            submission_id = str(payload[key])
            break

    body: dict[str, Any] = dict(payload)
    raw_request = payload.get("rawRequest")
    if isinstance(raw_request, str) and raw_request.strip():
        try:
            decoded = json.loads(raw_request)
        except ValueError:
            decoded = None
        if isinstance(decoded, Mapping):
            body.pop("rawRequest", None)
            body.update({str(key): value for key, value in decoded.items()})
    if submission_id is not None:
        body.setdefault("id", submission_id)
    return submission_id, body


def has_submission_content(body: Mapping[str, Any]) -> bool:
    """True when a webhook body carries answers or at least one non-empty field."""

    answers = body.get("answers")
    if isinstance(answers, Mapping) and answers:
        return True
    return any(answer_text(value).strip() for value in body.values())


def answer_text(value: Any) -> str:
    """Render one answer value as text."""

    if value is None:
        return ""
    if isinstance(value, Mapping):
        if all(value.get(part) for part in _DATE_PARTS):
            return f"{value['day']}/{value['month']}/{value['year']}"
        return ", ".join(answer_text(item) for item in value.values() if answer_text(item))
    if isinstance(value, list):
        return ", ".join(answer_text(item) for item in value if answer_text(item))
    return str(value)


def _first_present(answer: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if answer.get(key) is not None:
            return answer[key]
    return None
