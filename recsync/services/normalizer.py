"""
Normalizer for MediaSense session payloads.

MediaSense versions (and the proxies in front of them) disagree on both the
response envelope and the field names of a session. Everything here is a
pure function that maps whatever came back into `CanonicalSession`, or
`None` when the payload is unusable. Nothing in this module raises on bad
input.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from recsync.schemas.session import (
    CanonicalSession,
    MediaInfo,
    ParticipantData,
    RecorderInfo,
)

logger = logging.getLogger(__name__)

# Envelope keys that may hold the session list, in lookup order
SESSION_LIST_KEYS = ("sessions", "recordings", "results")

DIRECTIONS = ("inbound", "outbound", "internal", "unknown")


@dataclass
class NormalizedBatch:
    """Canonical sessions of one page plus the number of dropped payloads."""

    received: int = 0
    sessions: list[CanonicalSession] = field(default_factory=list)
    dropped: int = 0


def _lookup(raw: dict, path: str) -> Any:
    """Resolve a dotted path, returning None when any hop is missing."""
    value: Any = raw
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _first(raw: dict, *paths: str) -> Any:
    """First non-empty value among field aliases."""
    for path in paths:
        value = _lookup(raw, path)
        if value is not None and value != "":
            return value
    return None


def _to_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an upstream timestamp.

    Accepts ISO 8601 strings (with `Z`, an offset, or naive = UTC) and
    epoch milliseconds.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_direction(direction: Any) -> str:
    """Map free-form direction text onto inbound/outbound/internal/unknown."""
    if not isinstance(direction, str) or not direction:
        return "unknown"

    d = direction.lower()
    if "internal" in d:
        return "internal"
    if "out" in d:
        return "outbound"
    if "in" in d:
        return "inbound"
    return "unknown"


def _normalize_participants(participants: Any) -> list[ParticipantData]:
    if not isinstance(participants, list):
        return []

    normalized = []
    for p in participants:
        if not isinstance(p, dict):
            continue
        normalized.append(
            ParticipantData(
                type=_to_str(_first(p, "type", "role")) or "unknown",
                id=_to_str(_first(p, "id", "participantId")),
                name=_to_str(_first(p, "name", "displayName")),
                phone_number=_to_str(_first(p, "phoneNumber", "number", "dn")),
                device_name=_to_str(_first(p, "deviceName", "device")),
                join_time=parse_timestamp(_first(p, "joinTime", "startTime")),
                leave_time=parse_timestamp(_first(p, "leaveTime", "endTime")),
            )
        )
    return normalized


def _normalize_media(media: Any) -> MediaInfo:
    # Track arrays: the first track describes the recording
    track = media[0] if isinstance(media, list) and media else media
    if not isinstance(track, dict):
        return MediaInfo()

    url = _to_str(_first(track, "url", "mediaUrl", "audioUrl", "downloadUrl"))
    return MediaInfo(
        has_audio=bool(_first(track, "url", "mediaUrl", "audioUrl")),
        codec=_to_str(_first(track, "codec", "audioCodec")),
        sample_rate=_to_int(_first(track, "sampleRate", "audioSampleRate")),
        bitrate=_to_int(_first(track, "bitrate", "audioBitrate")),
        channels=_to_int(track.get("channels")) or 1,
        format=_to_str(_first(track, "format", "container", "fileType")),
        size=_to_int(_first(track, "size", "fileSize")),
        url=url,
    )


def _normalize_tags(tags: Any) -> dict[str, str]:
    if isinstance(tags, dict):
        return {str(k): str(v) for k, v in tags.items() if v is not None}

    # [{"name": ..., "value": ...}, ...]
    if isinstance(tags, list):
        normalized = {}
        for tag in tags:
            if isinstance(tag, dict) and _to_str(tag.get("name")):
                value = tag.get("value")
                normalized[str(tag["name"])] = "" if value is None else str(value)
        return normalized

    return {}


def normalize_session(raw: Any) -> CanonicalSession | None:
    """
    Map one raw session payload to the canonical shape.

    Returns None when the payload has no session id or no usable start time.
    """
    if not isinstance(raw, dict):
        return None

    try:
        session_id = _to_str(_first(raw, "sessionId", "id", "recordingId"))
        if not session_id:
            return None

        start_time = parse_timestamp(_first(raw, "startTime", "sessionStartTime"))
        if start_time is None:
            logger.warning(f"Session {session_id} has no usable start time")
            return None

        end_time = parse_timestamp(_first(raw, "endTime", "sessionEndTime"))

        duration = _to_int(_first(raw, "duration", "durationSeconds"))
        if duration is None and end_time is not None:
            duration = max(int((end_time - start_time).total_seconds()), 0)

        queue = raw.get("queue")
        csq = _first(raw, "csq", "contactServiceQueue")
        if csq is None and isinstance(queue, str):
            csq = queue

        custom_fields = _first(raw, "customFields", "metadata")

        return CanonicalSession(
            session_id=session_id,
            recording_id=_to_str(_first(raw, "recordingId", "mediaId")),
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration or 0,
            direction=normalize_direction(_first(raw, "direction", "callDirection")),
            ani=_to_str(_first(raw, "ani", "callerNumber", "fromNumber")),
            dnis=_to_str(_first(raw, "dnis", "calledNumber", "toNumber")),
            caller_name=_to_str(_first(raw, "callerName", "fromName")),
            called_name=_to_str(_first(raw, "calledName", "toName")),
            extension=_to_str(_first(raw, "extension", "agentExtension")),
            contact_id=_to_str(_first(raw, "contactId", "contact.id")),
            call_id=_to_str(_first(raw, "callId", "call.id")),
            agent_id=_to_str(_first(raw, "agentId", "agent.id", "ownerId")),
            agent_name=_to_str(_first(raw, "agentName", "agent.name", "ownerName")),
            team_id=_to_str(_first(raw, "teamId", "team.id")),
            team_name=_to_str(_first(raw, "teamName", "team.name")),
            csq=_to_str(csq),
            queue_name=_to_str(_first(raw, "queueName", "queue.name")),
            skill_group=_to_str(_first(raw, "skillGroup", "skill")),
            wrap_up_reason=_to_str(_first(raw, "wrapUpReason", "wrapUp.reason")),
            wrap_up_code=_to_str(_first(raw, "wrapUpCode", "wrapUp.code")),
            disposition_code=_to_str(_first(raw, "dispositionCode", "disposition")),
            transfer_count=_to_int(_first(raw, "transferCount", "transfers")) or 0,
            hold_time=_to_int(_first(raw, "holdTime", "holdDuration")) or 0,
            talk_time=_to_int(_first(raw, "talkTime", "talkDuration")) or 0,
            ring_time=_to_int(_first(raw, "ringTime", "ringDuration")) or 0,
            queue_time=_to_int(_first(raw, "queueTime", "queueDuration")) or 0,
            participants=_normalize_participants(_first(raw, "participants", "parties")),
            media=_normalize_media(_first(raw, "media", "tracks", "recording")),
            recorder=RecorderInfo(
                node=_to_str(_first(raw, "recorderNode", "recorder.node")),
                cluster=_to_str(_first(raw, "recorderCluster", "recorder.cluster")),
            ),
            tags=_normalize_tags(_first(raw, "tags", "labels")),
            custom_fields=custom_fields if isinstance(custom_fields, dict) else {},
            raw=raw,
        )
    except Exception as e:
        logger.warning(
            f"Failed to normalize session {raw.get('sessionId') or 'unknown'}: {e}"
        )
        return None


def extract_sessions(raw: Any) -> list[Any]:
    """
    Unwrap the session list from a query response.

    Standard MediaSense responses look like
    `{"responseCode": 2000, "responseBody": {"sessions": [...]}}`, but bare
    arrays and several other envelopes show up in the wild.
    """
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, dict):
        return []

    body = raw.get("responseBody")
    if isinstance(body, list) and body:
        return body
    if isinstance(body, dict):
        for key in SESSION_LIST_KEYS:
            if isinstance(body.get(key), list) and body[key]:
                return body[key]

    for key in (*SESSION_LIST_KEYS, "items"):
        if isinstance(raw.get(key), list) and raw[key]:
            return raw[key]

    data = raw.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in SESSION_LIST_KEYS:
            if isinstance(data.get(key), list):
                return data[key]

    return []


def normalize_batch(raw: Any, correlation_id: str = "-") -> NormalizedBatch:
    """Normalize a full query response; bad payloads are dropped and counted."""
    payloads = extract_sessions(raw)
    if not payloads and raw:
        logger.warning(
            f"[{correlation_id}] No sessions found in response "
            f"(keys: {list(raw) if isinstance(raw, dict) else type(raw).__name__})"
        )

    batch = NormalizedBatch(received=len(payloads))
    for payload in payloads:
        session = normalize_session(payload)
        if session is None:
            batch.dropped += 1
            session_ref = payload.get("sessionId") if isinstance(payload, dict) else None
            logger.warning(
                f"[{correlation_id}] Dropping unusable session payload "
                f"({session_ref or 'no session id'})"
            )
            continue
        batch.sessions.append(session)

    return batch


def build_search_text(session: CanonicalSession) -> str:
    """Denormalized full-text string for the recording."""
    parts = [
        session.ani,
        session.dnis,
        session.agent_name,
        session.agent_id,
        session.team_name,
        session.csq,
        session.queue_name,
        session.caller_name,
        session.called_name,
        session.wrap_up_reason,
        session.call_id,
        session.session_id,
    ]
    return " ".join(p for p in parts if p)
