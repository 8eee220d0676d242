"""
Services of the recap pipeline.

- filter_builder: sampling filter expression
- engine: transcoding engine (ffmpeg)
- segment_extractor: clip extraction with progress stream
- ai_clients: narration script generation (Gemini)
- error_classifier: user-facing failure categories
- stats_client: recap counter and ratings
- pipeline: orchestration state machine
- job_manager: in-memory jobs for the HTTP host
"""
