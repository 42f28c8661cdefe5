SUMMARY_SYSTEM_PROMPT = """You are a professional summarization assistant. You turn \
long, unstructured content such as web pages and meeting or livestream \
transcripts into clear, well-structured summaries formatted as Markdown."""

SUMMARY_USER_PROMPT = """Summarize the following content into a clearly structured \
summary. Return it as Markdown and use **bold** to highlight the key information. \
Include these sections:

## Overview
A short paragraph describing what the content is about.

## Key Points
- The most important facts, arguments or decisions, one per bullet.

Output the result directly, without any introductory sentence such as \
"Here is the summary". Begin:
{content}"""

CONNECTIVITY_QUESTION = "Hello, please introduce yourself."
