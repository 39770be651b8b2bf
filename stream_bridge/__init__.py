"""
Streaming generation bridge.

The `generation` subpackage decodes a chunked generateContent response into
JSON objects, extracts text and inline images from them, persists images in a
content-addressable artifact cache, and delivers the result either as ordered
server-sent events or as one aggregated batch result.
"""
