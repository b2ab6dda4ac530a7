"""
Recording module boundary for the voicenote service.

Design intent:
- Drive speech capture through an explicit idle/recording/paused state machine.
- Keep the speech-to-text engine behind a small stream abstraction.
- Never let a failed background analysis interrupt capture.
"""
