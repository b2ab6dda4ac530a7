"""
Patient note boundary for the voicenote service.

Design intent:
- Own the record being edited and tie recording, extraction and persistence together.
- Turn collaborator failures into user-visible notices instead of errors.
"""
