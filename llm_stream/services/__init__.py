from llm_stream.services.stream import StreamState, collect_many, collect_text, stream_deltas
from llm_stream.services.transport import iter_bytes

__all__ = ["StreamState", "collect_many", "collect_text", "iter_bytes", "stream_deltas"]
