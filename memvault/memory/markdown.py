"""Parse the sections of a rendered ``memory.md`` back into record fields."""

SECTION_FIELDS: dict[str, str] = {
    "Current State": "current_state",
    "Task Specification": "task_spec",
    "Workflow": "workflow",
    "Errors": "errors",
    "Learnings": "learnings",
    "Key Results": "key_results",
}


def parse_memory_sections(markdown: str) -> dict[str, str]:
    """
    Map known ``## `` sections to MemoryRecord field names.

    The first ``# `` heading becomes ``title``. Unknown sections are ignored
    and empty sections are omitted.
    """
    sections: dict[str, str] = {}
    current: str | None = None
    buffer: list[str] = []

    def flush() -> None:
        if current is not None:
            text = "\n".join(buffer).strip()
            if text:
                sections[current] = text

    for line in markdown.splitlines():
        if line.startswith("## "):
            flush()
            current = SECTION_FIELDS.get(line[3:].strip())
            buffer = []
        elif line.startswith("# ") and "title" not in sections and current is None:
            title = line[2:].strip()
            if title:
                sections["title"] = title
        elif current is not None:
            buffer.append(line)

    flush()
    return sections
