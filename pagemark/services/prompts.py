"""Prompts sent to the visual-description model."""

IMAGE_DESCRIPTION_PROMPT = """You are an expert at analyzing images and extracting meaningful information.
Describe the image in detail, capturing:

1. **Main Subject**: What is the primary focus of the image?
2. **Text Content**: Transcribe any visible text exactly as shown
3. **Diagrams/Charts**: If present, describe the structure and reproduce it in text form:
   - For flowcharts: describe steps and connections using arrows
   - For graphs: describe axes, data points, and trends
   - For tables: recreate them as markdown tables
   - For organizational charts: describe the hierarchy using indentation
4. **Visual Elements**: Colors, layout, important visual cues
5. **Context**: Anything that helps understand the image

Be thorough but concise. Output plain text or markdown as appropriate."""

PAGE_CONVERSION_PROMPT = """Convert this document page to markdown. Output ONLY the converted content.

Rules:
- Extract all text exactly as written, preserving the original language
- Use proper heading levels (#, ##, ###) for titles
- Format lists, tables, and quotes appropriately
- For images: add *[Image: brief description]*
- For charts/diagrams: describe data or structure briefly
- Keep citations and references intact
- NO commentary, explanations, or notes about your process
- NO markdown code block wrappers around the output
- Do NOT repeat content, each element should appear only once"""

# Prepended when the payload carries a file name
FILE_CONTEXT_PROMPT = "This image comes from '{file_name}'.\n\n"
