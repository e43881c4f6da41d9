"""Telephony audio primitives.

Twilio Media Streams carry G.711 mu-law at 8 kHz, one byte per sample, in 20 ms frames.
"""
