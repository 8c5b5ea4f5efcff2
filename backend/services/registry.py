"""
services/registry.py — Module-level service singletons.

No I/O at import time: API clients (OpenAI, boto3) are created on first use.
Tests swap behaviour by monkeypatching attributes on these instances.
"""

from services.extraction import TextExtractor
from services.ingestion import IngestionPipeline
from services.llm import LLMService
from services.storage import StorageService
from services.summarizer import Summarizer
from services.synthesis import SynthesisService

llm_service = LLMService()
storage_service = StorageService()
text_extractor = TextExtractor(llm_service)
summarizer = Summarizer(llm_service)
ingestion_pipeline = IngestionPipeline(storage_service, text_extractor, summarizer)
synthesis_service = SynthesisService(llm_service)
