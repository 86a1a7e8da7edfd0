import re


def tidy_variable_name(name: str) -> str:
    """
    Cleans up a string to be a suitable table or file name by:
    - Replacing dashes, spaces, and other common separators with underscores.
    - Converting to lowercase.
    - Stripping leading/trailing underscores.
    - Ensuring no multiple consecutive underscores.

    Args:
        name (str): The input string.

    Returns:
        str: The cleaned up string.
    """
    if not isinstance(name, str):
        name = str(name)

    name = re.sub(r'[\s\-/\\.:;,()\[\]{}]', '_', name)
    name = name.lower()
    name = re.sub(r'[^a-z0-9_]', '', name)
    name = re.sub(r'_+', '_', name)
    name = name.strip('_')
    if not name:
        raise ValueError("Name is empty after tidying.")
    return name


def sanitize_filename(name: str) -> str:
    """Convert a string to a valid filename component."""
    return name.replace(" ", "_").replace("/", "_").replace("\\", "_").replace(":", "_").replace("\"", "")
