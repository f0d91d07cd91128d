"""System instructions and marker contract for the completion provider."""

import json
import re
from typing import Optional, Sequence

TRANSLATION_START = "***TRANSLATION_START***"
TRANSLATION_END = "***TRANSLATION_END***"

# Accepted variants, most specific first
START_MARKERS: tuple[str, ...] = (
    TRANSLATION_START,
    "{{start}}",
    "{{ start }}",
    "{start}",
    "START:",
    "**START**",
)
END_MARKERS: tuple[str, ...] = (
    TRANSLATION_END,
    "{{end}}",
    "{{ end }}",
    "{end}",
    "END:",
    "**END**",
)

CHAPTER_TAG_PATTERN = re.compile(r"\[chapter:\s*(\d+)\]", re.IGNORECASE)


def _series_context(series_name: Optional[str]) -> str:
    if not series_name or not series_name.strip():
        return ""
    return (
        "\n\n**SERIES CONTEXT:**\n"
        f'This chapter is from the series: "{series_name.strip()}"\n'
        "Please use this series name as context for character name consistency, "
        "gender identification, and proper noun translations. Maintain consistent "
        "character name spellings and gender pronouns throughout the translation "
        "based on this series context."
    )


def _glossary_context(glossary_context: Optional[str]) -> str:
    if not glossary_context:
        return ""
    return f"\n\n{glossary_context}"


FORMATTING_RULES = """1. **Paragraph Spacing:** Separate every paragraph with a single blank line (i.e., double-spaced). This includes lines of dialogue. This is the most important formatting rule.
2. **Dialogue:** Enclose all spoken dialogue in double quotation marks (`"..."`). Every change in speaker must begin on a new, separate paragraph.
3. **Internal Thoughts:** When a character is thinking to themselves (internal monologue), format their thoughts in *italics*.
4. **Scene Breaks:** If the original text uses a line of symbols (like `………` or `* * *`) to indicate a break in the scene, replace it with a clean, centered `***` on its own line, with blank lines above and below it."""


def build_translation_prompt(
    series_name: Optional[str] = None,
    glossary_context: Optional[str] = None,
) -> str:
    """Build the system instruction for URL-context chapter translation.

    Args:
        series_name: Optional series name for name/gender consistency
        glossary_context: Optional rendered character reference

    Returns:
        System instruction text
    """
    return f"""**CRITICAL:** You MUST start your response with exactly "{TRANSLATION_START}" and end with exactly "{TRANSLATION_END}". This is mandatory!

You are an expert translator and typesetter specializing in web novels. Your task is to translate the web novel chapter from the provided URL into English, following a very strict set of rules for both content and formatting.{_series_context(series_name)}{_glossary_context(glossary_context)}

**ABSOLUTELY CRITICAL: NO THINKING OR REASONING**
You must NOT show any thinking process, analysis, or reasoning. Do NOT include phrases like "I will translate", "Let me process", or any meta-commentary about your translation process. Your response must contain ONLY the final translated chapter content.

**CRITICAL INSTRUCTION: CLEAN OUTPUT**
Your final output must be completely clean prose. It is absolutely forbidden to include any form of in-line citation markers like `[1]`, source numbers, footnotes, or any other annotations within the translated text. You must also remove any extraneous text from the source page, such as "Sources," "help," or the original Japanese title at the end of the text.

**Core Instructions:**
1. **Use URL for Context:** Analyze the source page for character names, specific terms, and narrative tone to ensure a consistent and accurate translation.
2. **Character Consistency:** Pay special attention to maintaining consistent character name spellings and correct gender pronouns throughout the translation.
3. **Translate Only, No Chatter:** Your entire output must be *only* the final translated chapter as per the format below.
4. **Direct Translation Only:** Start immediately with the chapter title and proceed directly to the translated content.

**Required Output Format:**
* **Line 1:** The translated chapter title, followed by the chapter number formatted as `[chapter: X]`.
    * **Example:** `The Crimson Contract [chapter: 214]`
* **Body:** The full, translated text of the chapter's body, formatted according to the detailed rules below.
* **Final Line:** The original source URL that was provided for translation.

---
**Detailed Formatting Rules for the Chapter Body:**
{FORMATTING_RULES}
---

**Constraint:**
* Do not include the name of the web novel anywhere in your output (except for the URL at the very end).

**MANDATORY FORMAT - READ CAREFULLY:**
{TRANSLATION_START}
Chapter Title [chapter: X]
[translated content here]
[source URL]
{TRANSLATION_END}

**WARNING:** If you do NOT include both "{TRANSLATION_START}" and "{TRANSLATION_END}" markers, your translation will be rejected and considered failed.

Now, please process the following URL:"""


def build_fallback_prompt(
    series_name: Optional[str] = None,
    chapter_number: Optional[int] = None,
    glossary_context: Optional[str] = None,
) -> str:
    """Build the system instruction for direct-text translation of pasted source text."""
    chapter_label = chapter_number if chapter_number is not None else "X"
    return f"""**CRITICAL:** You MUST start your response with exactly "{TRANSLATION_START}" and end with exactly "{TRANSLATION_END}". This is mandatory!

You are an expert translator and typesetter specializing in web novels. Your task is to translate the provided Japanese text into English, following a very strict set of rules for both content and formatting.{_series_context(series_name)}{_glossary_context(glossary_context)}

**ABSOLUTELY CRITICAL: NO THINKING OR REASONING**
You must NOT show any thinking process, analysis, or reasoning. Your response must contain ONLY the final translated chapter content.

**MANDATORY FORMAT - READ CAREFULLY:**
{TRANSLATION_START}
Chapter Title [chapter: {chapter_label}]
[translated content here]
{TRANSLATION_END}

**Required Output Format:**
* **Line 1:** The translated chapter title, followed by the chapter number formatted as `[chapter: {chapter_label}]`.
* **Body:** The full, translated text of the chapter's body, formatted according to the detailed rules below.

**Detailed Formatting Rules for the Chapter Body:**
{FORMATTING_RULES}
5. **Character Consistency:** Pay special attention to maintaining consistent character name spellings and correct gender pronouns throughout the translation.

Now, please translate the following Japanese text:"""


def build_segment_prompt(
    series_name: str,
    start: int,
    end: int,
    segment_number: int,
    previous_characters: Sequence[dict] = (),
    max_characters: int = 15,
    major_words: int = 15,
    minor_words: int = 8,
) -> str:
    """Build the system instruction for one glossary segment.

    Args:
        series_name: Series name
        start: First chapter of the segment
        end: Last chapter of the segment
        segment_number: 1-based segment number
        previous_characters: Already capped context entries from earlier segments
        max_characters: Character limit per segment
        major_words: Description word limit for major characters
        minor_words: Description word limit for minor characters

    Returns:
        System instruction text
    """
    context_section = ""
    if previous_characters:
        context_json = json.dumps(
            {"characters": list(previous_characters)}, ensure_ascii=False, indent=2
        )
        context_section = f"""

**PREVIOUS SEGMENTS CONTEXT:**
You have access to character information from previous segments of this series. Use this to:
- Keep the SAME englishName spellings for consistency (CRITICAL)
- Track character development, aging, relationship changes
- Note new roles or status changes
- Update descriptions to reflect current story state

Previous characters:
{context_json}"""

    return f"""You are an expert character analyst specializing in Japanese web novels. Analyze chapters {start}-{end} of "{series_name}" (Segment {segment_number}) and create a focused character glossary.{context_section}

**ABSOLUTELY CRITICAL: NO THINKING OR REASONING**
Your response must contain ONLY the final JSON glossary.

**SEGMENT ANALYSIS REQUIREMENTS:**
1. **CHARACTER LIMIT:** Maximum {max_characters} characters total per segment
2. **DESCRIPTION LIMITS:**
   - Major characters: {major_words} words maximum per description
   - Minor characters: {minor_words} words maximum per description
   - NO detailed backstories or relationships
3. **Character Details:** Include if mentioned:
   - Age: "16", "adult", "teenager", "elderly" (1-2 words max)
   - Gender: "male", "female", "unknown" (1 word)
   - Height: "tall", "short", "average", "160cm" (1-2 words max)
4. **Character Focus:** Only characters who ACTIVELY speak or act in chapters {start}-{end}
5. **Character Updates:** For returning characters:
   - Keep EXACT same englishName (critical)
   - Brief status update only (4-6 words)
   - Increment occurrenceCount by +1
6. **New Characters:** Only if they have significant dialogue or actions

**LANGUAGE RULES:**
- Descriptions must be ENGLISH ONLY - no Japanese characters mixed in
- NO quotes around individual words in descriptions

**OUTPUT FORMAT:**
You MUST respond with ONLY a valid JSON object in this exact format:

```json
{{
  "characters": [
    {{
      "japaneseName": "主人公",
      "englishName": "Protagonist",
      "age": "17",
      "gender": "female",
      "height": "average",
      "description": "Now attends academy, more confident",
      "importance": "major",
      "occurrenceCount": 2
    }}
  ]
}}
```

**CRITICAL JSON RULES:**
- Ensure PERFECTLY VALID JSON syntax - no trailing commas, proper quotes
- NO explanatory text outside the JSON code block

Now analyze chapters {start}-{end} and create this segment's glossary:"""


def build_segment_user_message(start: int, urls: Sequence[str]) -> str:
    """List a segment's chapter URLs, numbered from start."""
    url_list = "\n".join(f"Chapter {start + i}: {url}" for i, url in enumerate(urls))
    return f"Please analyze this segment and generate a focused character glossary:\n\n{url_list}"
