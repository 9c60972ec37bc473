"""Telephony transport abstractions.

A transport establishes and tears down the audio session of a call and
decodes push payloads into invites. Its progress is reported back through a
`TransportEventSink`.
"""
