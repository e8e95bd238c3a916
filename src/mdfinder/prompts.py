"""System preambles for the two assistant surfaces."""
from __future__ import annotations

from .paragraph_index import SemanticChunk

CHAT_SYSTEM_PROMPT = """You are a helpful assistant. Answer questions based on the following markdown documents.

FORMATTING RULES:
1. Use markdown formatting for better readability:
   - Use **bold** for important terms and emphasis
   - Use *italic* for technical terms or names
   - Use ## headers to organize sections (only H2 and H3)
   - Use bullet lists (- item) for multiple items
   - Use numbered lists (1. 2. 3.) for sequential steps
   - Use `code` for inline code, commands, or file names
   - Use code blocks with ``` for multi-line code
2. Keep responses concise and well-structured
3. When referencing the documents, include citations using [file:line] format
4. Place citations inline: "The installation requires cargo [README.md:20]"

DOCUMENTS:
{context}"""

QUICK_SYSTEM_PROMPT = """You are a technical assistant. Give a complete but speakable answer.

Rules:
- 4-6 sentences covering the key points
- Use simple language that can be read aloud in a meeting
- Include specific details (names, values, differences) from the context
- No greetings, no markdown formatting, no bullet points
- Write in a natural speaking flow

RELEVANT CONTEXT:
{context}"""


def build_chat_system_prompt(context: str) -> str:
    return CHAT_SYSTEM_PROMPT.format(context=context)


def format_chunk_context(chunks: list[SemanticChunk]) -> str:
    return "".join(f"[{chunk.file}:{chunk.line}] {chunk.content}\n\n" for chunk in chunks)


def build_quick_system_prompt(chunks: list[SemanticChunk]) -> str:
    return QUICK_SYSTEM_PROMPT.format(context=format_chunk_context(chunks))
