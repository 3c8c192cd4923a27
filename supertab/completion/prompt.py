# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Chat prompt construction for HTTP completions."""

from pathlib import PurePath

from supertab.completion.protocol import CompletionRequest

CURSOR_MARKER = "<|cursor|>"

SYSTEM_PROMPT = (
    "You are an expert code completion assistant. Complete the code at the <|cursor|> position. "
    "Only return the completion text that should be inserted at the cursor position. "
    "Do not include the code before the cursor. "
    "Do not include explanations or markdown formatting. "
    "Return only the raw code completion."
)


def insert_cursor_marker(text: str, offset: int) -> str:
    """Insert the cursor marker at an offset (unchanged if out of range)."""
    if offset < 0 or offset > len(text):
        return text
    return text[:offset] + CURSOR_MARKER + text[offset:]


def build_completion_messages(request: CompletionRequest) -> list[dict[str, str]]:
    """Build OpenAI chat messages for a completion request.

    The enrichment text is passed through untouched as its own user
    message ahead of the code.
    """
    language = PurePath(request.file_identity).suffix.lstrip(".")
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]

    if request.enrichment_text:
        messages.append({"role": "user", "content": request.enrichment_text})

    content = insert_cursor_marker(request.document_text, request.cursor_offset)
    messages.append(
        {
            "role": "user",
            "content": f"Complete the {language} code at {CURSOR_MARKER}:\n\n{content}",
        }
    )
    return messages

