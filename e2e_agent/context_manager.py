import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import ScenarioDocument, SelectorMatch


class SessionContextManager:
    """In-memory bookkeeping for server sessions.

    A session remembers the last parsed scenario, the selectors found per
    page, and a log of the tool calls made on its behalf.
    """

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def create_session(self, session_id: str) -> Dict[str, Any]:
        now = datetime.now().isoformat()
        self.sessions[session_id] = {
            "id": session_id,
            "created_at": now,
            "updated_at": now,
            "scenario_path": None,
            "scenario": None,
            "selectors_by_page": {},
            "invocations": [],
        }
        return self.sessions[session_id]

    def get_session(self, session_id: str) -> Dict[str, Any]:
        """Get a session, creating it on first use"""
        if session_id not in self.sessions:
            return self.create_session(session_id)
        return self.sessions[session_id]

    def set_scenario(self, session_id: str, document: ScenarioDocument, scenario_path: Optional[str] = None):
        session = self.get_session(session_id)
        session["scenario"] = document.model_dump(mode="json")
        session["scenario_path"] = scenario_path
        session["updated_at"] = datetime.now().isoformat()

    def record_selectors(self, session_id: str, page_name: str, matches: List[SelectorMatch]):
        session = self.get_session(session_id)
        session["selectors_by_page"][page_name] = [match.model_dump(mode="json") for match in matches]
        session["updated_at"] = datetime.now().isoformat()

    def record_invocation(self, session_id: str, tool_name: str, arguments: Dict[str, Any], status: str, message: str = ""):
        session = self.get_session(session_id)
        session["invocations"].append({
            "id": str(uuid.uuid4()),
            "tool": tool_name,
            "arguments": arguments,
            "status": status,
            "message": message,
            "timestamp": datetime.now().isoformat(),
        })
        session["updated_at"] = datetime.now().isoformat()

    def get_invocations(self, session_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        invocations = self.get_session(session_id)["invocations"]
        if limit:
            return invocations[-limit:]
        return invocations

    def clear_session(self, session_id: str):
        self.sessions.pop(session_id, None)

    def list_sessions(self) -> Dict[str, Dict[str, Any]]:
        return {
            session_id: {
                "id": session["id"],
                "created_at": session["created_at"],
                "updated_at": session["updated_at"],
                "scenario_path": session["scenario_path"],
                "pages_with_selectors": sorted(session["selectors_by_page"]),
                "invocation_count": len(session["invocations"]),
            }
            for session_id, session in self.sessions.items()
        }
