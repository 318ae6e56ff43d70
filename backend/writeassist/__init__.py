"""AI request orchestration for document paragraphs.

Batches paragraphs into AI-sized chunks, serializes text, image and speech
requests through a single-flight worker and normalizes the model output.
"""

__version__ = "1.0.0"
