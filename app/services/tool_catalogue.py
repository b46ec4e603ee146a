"""
Calendar/Meet Tool Catalogue - MCP tool definitions.

Served verbatim by ``tools/list``. ``tools/call`` names must come from this
list; required arguments are checked before a call is forwarded.
"""

from typing import Any, Dict, List, Optional

from app.core.errors import ValidationError

_CALENDAR_ID = {"type": "string", "default": "primary"}
_RFC3339 = {"type": "string", "description": "RFC3339 timestamp"}
_EVENT_ID = {"type": "string", "description": "Calendar event ID"}
_PAGE_SIZE = {"type": "number", "default": 10}
_ACCESS_TYPE = {"type": "string", "enum": ["OPEN", "TRUSTED", "RESTRICTED"]}
_CONFERENCE_RECORD = {"type": "string", "description": "Conference record resource name"}

MEET_TOOLS: List[Dict[str, Any]] = [
    # Calendar API v3
    {
        "name": "calendar_v3_list_calendars",
        "description": "List calendars the user has access to",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "calendar_v3_list_events",
        "description": "List calendar events with optional Meet links filtering",
        "inputSchema": {
            "type": "object",
            "properties": {
                "calendar_id": _CALENDAR_ID,
                "time_min": _RFC3339,
                "time_max": _RFC3339,
                "max_results": {"type": "number", "default": 10},
                "single_events": {"type": "boolean", "default": True},
                "order_by": {"type": "string", "default": "startTime"},
            },
        },
    },
    {
        "name": "calendar_v3_get_event",
        "description": "Get specific calendar event details including guest permissions",
        "inputSchema": {
            "type": "object",
            "properties": {"calendar_id": _CALENDAR_ID, "event_id": _EVENT_ID},
            "required": ["event_id"],
        },
    },
    {
        "name": "calendar_v3_create_event",
        "description": "Create calendar event with optional Google Meet conference and guest permissions",
        "inputSchema": {
            "type": "object",
            "properties": {
                "calendar_id": _CALENDAR_ID,
                "summary": {"type": "string", "description": "Event title"},
                "description": {"type": "string", "description": "Event description"},
                "start_time": _RFC3339,
                "end_time": _RFC3339,
                "attendees": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of email addresses",
                },
                "create_meet_conference": {"type": "boolean", "default": False},
                "guest_can_invite_others": {"type": "boolean", "default": True},
                "guest_can_modify": {"type": "boolean", "default": False},
                "guest_can_see_other_guests": {"type": "boolean", "default": True},
            },
            "required": ["summary", "start_time", "end_time"],
        },
    },
    {
        "name": "calendar_v3_update_event",
        "description": "Update existing calendar event including all guest permissions",
        "inputSchema": {
            "type": "object",
            "properties": {
                "calendar_id": _CALENDAR_ID,
                "event_id": _EVENT_ID,
                "summary": {"type": "string"},
                "description": {"type": "string"},
                "start_time": _RFC3339,
                "end_time": _RFC3339,
                "attendees": {"type": "array", "items": {"type": "string"}},
                "guest_can_invite_others": {"type": "boolean"},
                "guest_can_modify": {"type": "boolean"},
                "guest_can_see_other_guests": {"type": "boolean"},
            },
            "required": ["event_id"],
        },
    },
    {
        "name": "calendar_v3_delete_event",
        "description": "Delete calendar event",
        "inputSchema": {
            "type": "object",
            "properties": {"calendar_id": _CALENDAR_ID, "event_id": _EVENT_ID},
            "required": ["event_id"],
        },
    },
    # Meet API v2
    {
        "name": "meet_v2_create_space",
        "description": "Create Google Meet space with advanced enterprise configuration",
        "inputSchema": {
            "type": "object",
            "properties": {
                "access_type": {**_ACCESS_TYPE, "default": "TRUSTED"},
                "enable_recording": {"type": "boolean", "default": False},
                "enable_transcription": {"type": "boolean", "default": False},
                "enable_smart_notes": {"type": "boolean", "default": False},
                "moderation_mode": {"type": "string", "enum": ["OFF", "ON"], "default": "OFF"},
                "chat_restriction": {
                    "type": "string",
                    "enum": ["UNRESTRICTED", "HOSTS_ONLY"],
                    "default": "UNRESTRICTED",
                },
                "presentation_restriction": {
                    "type": "string",
                    "enum": ["UNRESTRICTED", "HOSTS_ONLY"],
                    "default": "UNRESTRICTED",
                },
            },
        },
    },
    {
        "name": "meet_v2_get_space",
        "description": "Get Google Meet space details and configuration",
        "inputSchema": {
            "type": "object",
            "properties": {"space_name": {"type": "string", "description": "Space resource name (spaces/xxx)"}},
            "required": ["space_name"],
        },
    },
    {
        "name": "meet_v2_update_space",
        "description": "Update Google Meet space configuration",
        "inputSchema": {
            "type": "object",
            "properties": {
                "space_name": {"type": "string", "description": "Space resource name"},
                "access_type": _ACCESS_TYPE,
                "enable_recording": {"type": "boolean"},
                "enable_transcription": {"type": "boolean"},
                "moderation_mode": {"type": "string", "enum": ["OFF", "ON"]},
            },
            "required": ["space_name"],
        },
    },
    {
        "name": "meet_v2_end_active_conference",
        "description": "End active conference in a Meet space",
        "inputSchema": {
            "type": "object",
            "properties": {"space_name": {"type": "string", "description": "Space resource name"}},
            "required": ["space_name"],
        },
    },
    {
        "name": "meet_v2_list_conference_records",
        "description": "List conference records for past meetings",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filter": {"type": "string", "description": "Filter expression"},
                "page_size": _PAGE_SIZE,
            },
        },
    },
    {
        "name": "meet_v2_get_conference_record",
        "description": "Get specific conference record details",
        "inputSchema": {
            "type": "object",
            "properties": {"conference_record_name": _CONFERENCE_RECORD},
            "required": ["conference_record_name"],
        },
    },
    {
        "name": "meet_v2_list_recordings",
        "description": "List recordings for a conference record",
        "inputSchema": {
            "type": "object",
            "properties": {"conference_record_name": _CONFERENCE_RECORD, "page_size": _PAGE_SIZE},
            "required": ["conference_record_name"],
        },
    },
    {
        "name": "meet_v2_get_recording",
        "description": "Get recording details and download information",
        "inputSchema": {
            "type": "object",
            "properties": {"recording_name": {"type": "string", "description": "Recording resource name"}},
            "required": ["recording_name"],
        },
    },
    {
        "name": "meet_v2_list_transcripts",
        "description": "List transcripts for a conference record",
        "inputSchema": {
            "type": "object",
            "properties": {"conference_record_name": _CONFERENCE_RECORD, "page_size": _PAGE_SIZE},
            "required": ["conference_record_name"],
        },
    },
    {
        "name": "meet_v2_get_transcript",
        "description": "Get transcript details and content",
        "inputSchema": {
            "type": "object",
            "properties": {"transcript_name": {"type": "string", "description": "Transcript resource name"}},
            "required": ["transcript_name"],
        },
    },
    {
        "name": "meet_v2_list_transcript_entries",
        "description": "List individual transcript entries (speech segments)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "transcript_name": {"type": "string", "description": "Transcript resource name"},
                "page_size": _PAGE_SIZE,
            },
            "required": ["transcript_name"],
        },
    },
    {
        "name": "meet_v2_list_participants",
        "description": "List participants of a conference record",
        "inputSchema": {
            "type": "object",
            "properties": {"conference_record_name": _CONFERENCE_RECORD, "page_size": _PAGE_SIZE},
            "required": ["conference_record_name"],
        },
    },
    {
        "name": "meet_v2_get_participant",
        "description": "Get details of a single conference participant",
        "inputSchema": {
            "type": "object",
            "properties": {"participant_name": {"type": "string", "description": "Participant resource name"}},
            "required": ["participant_name"],
        },
    },
    {
        "name": "meet_v2_list_participant_sessions",
        "description": "List join/leave sessions of a participant",
        "inputSchema": {
            "type": "object",
            "properties": {
                "participant_name": {"type": "string", "description": "Participant resource name"},
                "page_size": _PAGE_SIZE,
            },
            "required": ["participant_name"],
        },
    },
    {
        "name": "meet_v2_get_participant_session",
        "description": "Get a single participant session",
        "inputSchema": {
            "type": "object",
            "properties": {
                "participant_session_name": {"type": "string", "description": "Participant session resource name"},
            },
            "required": ["participant_session_name"],
        },
    },
]

_TOOLS_BY_NAME: Dict[str, Dict[str, Any]] = {tool["name"]: tool for tool in MEET_TOOLS}


def tool_names() -> List[str]:
    return [tool["name"] for tool in MEET_TOOLS]


def get_tool(name: str) -> Optional[Dict[str, Any]]:
    return _TOOLS_BY_NAME.get(name)


def check_arguments(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Raise ValidationError for an unknown tool or a missing required argument."""
    tool = get_tool(name)
    if tool is None:
        raise ValidationError(f"Unknown tool: {name}", context={"tool": name})
    missing = [
        field for field in tool["inputSchema"].get("required", [])
        if arguments.get(field) in (None, "")
    ]
    if missing:
        raise ValidationError(
            f"{name} missing required arguments: {', '.join(missing)}",
            context={"tool": name},
        )
    return tool
