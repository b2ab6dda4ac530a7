"""
Field extraction boundary for the voicenote service.

Design intent:
- Extract patient fields from transcripts with an LLM, or with keyword rules
  when the model path is unavailable.
- Keep the two merge policies (model wins / rules only fill gaps) separate.
"""
