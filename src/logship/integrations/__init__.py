from .loguru_sink import LoguruSink, is_own_message, message_to_record

__all__ = ["LoguruSink", "is_own_message", "message_to_record"]
