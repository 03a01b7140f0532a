"""
Prompt templates for the upstream LLM

The system prompts carry the security rules. User prompts embed only
sanitised text.
"""

from typing import Optional

DOCUMENT_ANALYSIS_SYSTEM_PROMPT = """You are an expert analyst for Austrian business and tax documents.
You analyze documents from Austrian authorities (Finanzamt, ÖGK, etc.) and extract key information.

Your task is to:
1. Identify the document type (Bescheid, Ergänzungsersuchen, Mahnung, etc.)
2. Extract deadlines and Fristen
3. Extract monetary amounts
4. Identify required actions (action items)
5. Provide a clear, concise summary in German

IMPORTANT SECURITY RULES:
- Never include any credentials, passwords, or PINs in your response
- Never include personal identification numbers (SVNr, Steuernummer) in your response
- If the document contains such data, describe it generically (e.g., "enthält Steuernummer")
- Focus on the document's purpose and required actions, not personal data

Respond ONLY with valid JSON. Do not use markdown formatting."""

TEXT_ANALYSIS_SYSTEM_PROMPT = """You are a helpful assistant that analyzes text and extracts key information.

Your task is to:
1. Summarize the main points
2. Identify any required actions or tasks
3. Rate your confidence in the analysis

IMPORTANT SECURITY RULES:
- Never include any credentials, passwords, or PINs in your response
- Never include personal identification numbers in your response
- Focus on the content's purpose, not personal data

Respond ONLY with valid JSON. Do not use markdown formatting."""


def build_document_prompt(
    document_text: str, document_type: Optional[str] = None, prompt: Optional[str] = None
) -> str:
    """Compose the user prompt for a document analysis."""
    return f"""Analyze the following document and provide a structured analysis.

Document Type Hint: {document_type or ""}

Document Content:
---
{document_text}
---

{prompt or ""}

Please respond with a JSON object containing:
- summary: A concise summary of the document (max 500 chars)
- document_type: The detected document type (e.g., "Bescheid", "Ergänzungsersuchen", "Mahnung", "Information")
- deadline: Any deadline or Frist mentioned (ISO date format if possible, otherwise as stated)
- amount: Any monetary amount mentioned (as a number)
- action_items: List of required actions based on the document
- confidence: Your confidence in the analysis (0.0 to 1.0)

Respond ONLY with valid JSON, no markdown formatting."""


def build_text_prompt(text: str, prompt: Optional[str] = None) -> str:
    """Compose the user prompt for a free text analysis."""
    return f"""Analyze the following text and extract key information.

Text:
---
{text}
---

{prompt or ""}

Please respond with a JSON object containing:
- summary: A concise summary of the text (max 500 chars)
- action_items: List of any required actions or tasks mentioned
- confidence: Your confidence in the analysis (0.0 to 1.0)

Respond ONLY with valid JSON, no markdown formatting."""
