from pydantic import BaseModel, TypeAdapter, ValidationError


def extract_json_blocks_from_text(text: str) -> list[str]:
    """Extract all fenced (```) blocks from a text string."""

    lines = text.strip().split("\n")

    start_index: int | None = None
    end_index: int | None = None

    matches: list[str] = []

    for i, line in enumerate(lines):
        if line.startswith("```") and start_index is None:
            start_index = i + 1
            continue
        if line.startswith("```") and start_index is not None and end_index is None:
            end_index = i

        if start_index is not None and end_index is not None:
            matches.append("\n".join(lines[start_index:end_index]))
            start_index = None
            end_index = None

    return matches


def extract_single_object_from_text[T: BaseModel](text: str, object_type: type[T]) -> T:
    """Extract an object from a text string.

    The text is first validated as bare JSON. Models sometimes wrap the object in a Markdown block anyway, for example:
    ```json
    {"summary": "...", "suggestions": []}
    ```
    in which case the single fenced block is validated instead.

    Raises:
        ValidationError: If neither the text nor its single fenced block is a valid object.
    """

    type_adapter: TypeAdapter[T] = TypeAdapter[T](object_type)

    try:
        return type_adapter.validate_json(text.strip())
    except ValidationError:
        matches: list[str] = extract_json_blocks_from_text(text)

        if len(matches) != 1:
            raise

        return type_adapter.validate_json(matches[0])
