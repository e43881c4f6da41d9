"""Per-call realtime relay between a Twilio media stream and the speech pipeline.

Inbound audio is forwarded to streaming ASR; every finalized utterance becomes one turn
(LLM reply -> TTS -> paced playback) executed by the session's own turn loop.
"""
