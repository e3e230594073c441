"""Request construction for the generation API.

Builds the user message for a file (Base64 payload plus detected
language, or a fixed instruction for empty files) and the chat-completions
request body around the system prompt template.
"""

import base64
import mimetypes
from pathlib import Path
from typing import Any, Dict

from pretackler.models.config import ModelSettings

UNKNOWN_LANGUAGE = "Unknown"

LANGUAGE_BY_EXTENSION: Dict[str, str] = {
    "md": "Markdown",
    "markdown": "Markdown",
    "txt": "Plain text",
    "rs": "Rust",
    "py": "Python",
    "js": "JavaScript",
    "ts": "TypeScript",
    "tsx": "TypeScript/TSX",
    "jsx": "JavaScript/JSX",
    "go": "Go",
    "java": "Java",
    "c": "C",
    "cpp": "C++",
    "cxx": "C++",
    "cc": "C++",
    "hpp": "C++",
    "hxx": "C++",
    "h": "C/C++ header",
    "cs": "C#",
    "swift": "Swift",
    "kt": "Kotlin",
    "kts": "Kotlin",
    "php": "PHP",
    "rb": "Ruby",
    "scala": "Scala",
    "lua": "Lua",
    "sh": "Shell",
    "bash": "Shell",
    "ps1": "PowerShell",
    "html": "HTML",
    "htm": "HTML",
    "css": "CSS",
    "scss": "SCSS/SASS",
    "sass": "SCSS/SASS",
    "less": "LESS",
    "json": "JSON",
    "toml": "TOML",
    "yaml": "YAML",
    "yml": "YAML",
    "ini": "INI",
    "env": "Environment variables",
    "lock": "Lock file",
    "xml": "XML",
    "sql": "SQL",
    "csv": "CSV",
    "tsv": "TSV",
    "bin": "Binary",
    "wasm": "WebAssembly",
    "exe": "Executable",
    "dll": "Dynamic library",
}

LANGUAGE_BY_MIME: Dict[str, str] = {
    "application/json": "JSON",
    "text/plain": "Plain text",
    "text/markdown": "Markdown",
    "text/css": "CSS",
    "text/html": "HTML",
}


def detect_language(path: Path) -> str:
    """Best-effort language label from the file extension."""
    ext = path.suffix.lower().lstrip(".")
    if ext in LANGUAGE_BY_EXTENSION:
        return LANGUAGE_BY_EXTENSION[ext]
    mime, _ = mimetypes.guess_type(path.name)
    return LANGUAGE_BY_MIME.get(mime or "", UNKNOWN_LANGUAGE)


def build_user_message(path: Path, content: bytes) -> str:
    """User turn for one file. The whole file always goes in one message."""
    file_name = path.name or "unknown"
    language = detect_language(path)

    if not content:
        return (
            f"File `{file_name}` is currently 0 bytes long.\n"
            f"Language used by the file: {language}\n"
            "Strictly follow the empty-file output format:\n"
            f"File name: {file_name}\n"
            f"Language used by the file: {language}\n"
            "Purpose of the file: the file is empty; its purpose cannot be "
            "determined at initialization."
        )

    payload = base64.b64encode(content).decode("ascii")
    return (
        f"File `{file_name}` is transmitted Base64-encoded.\n"
        f"Language used by the file: {language}\n"
        f"Encoded byte stream follows:\n\n{payload}"
    )


def build_request_body(
    settings: ModelSettings, prompt: str, user_message: str
) -> Dict[str, Any]:
    """Streaming chat-completions request body."""
    return {
        "model": settings.model,
        "stream": True,
        "temperature": settings.temperature,
        "top_k": settings.top_k,
        "messages": [
            {"role": "system", "content": prompt},
            {"role": "user", "content": user_message},
        ],
    }
