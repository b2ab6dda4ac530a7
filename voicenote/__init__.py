"""
Voicenote service package.

Design intent:
- Turn a spoken patient consultation into an editable structured patient note.
- Keep the recording lifecycle, field extraction and persistence independent.
"""
