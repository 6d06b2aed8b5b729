"""
Chat client core.

- parser: splits message content into text/code segments
- voice_session: speech capture/playback state machine over injected backends
- controller: chat view glue (send/receive, voice mode, auto-read)

Rendering and the host's speech facilities live outside this package.
"""
