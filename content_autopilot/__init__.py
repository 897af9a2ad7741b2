"""
Content Autopilot

Detects signals worth acting on for a local business, turns them into
deduplicated content drafts under a monthly plan quota, walks drafts through
human approval, publishes them, and schedules a delayed recheck.

Usage:
    from content_autopilot.autopilot_service import AutopilotService
    from content_autopilot.draft_creator import DraftCreator
    from content_autopilot.store import JsonAutopilotStore

    store = JsonAutopilotStore(Path("data/autopilot"))
    service = AutopilotService(store, DraftCreator(store))
    summary = await service.run_for_all_orgs()
"""

__version__ = "1.0.0"
