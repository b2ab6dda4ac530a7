"""
HTTP boundary for the voicenote service.

Design intent:
- Keep API orchestration thin and typed.
- Delegate recording, extraction and persistence to their own modules.
"""
