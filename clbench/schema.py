"""
Validated, self-describing configuration models

The `schema` decorator turns a class into a frozen `pydantic` dataclass, and
attaches the descriptions found in its doc string. The doc string has a
one-line summary, an optional paragraph, and a `Fields` section:

```python
@schema
class Launch:
    \"""
    Kernel launch geometry

    The global size is rounded up from the number of elements.

    Fields
    ------

    num_elements:      number of elements processed by the kernel
    local_group_size:  number of work-items in a local group
    \"""

    num_elements: int = 1000
    local_group_size: int = 128
```

`Launch(num_elements=[42])` raises a `ValidationError`, as does any unknown
keyword argument. `Launch().table()` is a `rich` table listing each field
with its value and description.
"""

from typing import NamedTuple

FIELDS_HEADER = ("Fields", "------")


class SchemaDoc(NamedTuple):
    summary: str
    details: str
    fields: dict


def parse_docstring(doc):
    """
    Split a schema doc string into its summary, details, and field
    descriptions.
    """
    from textwrap import dedent

    lines = [line.strip() for line in dedent(doc or "").splitlines()]

    try:
        start = lines.index(FIELDS_HEADER[0])
    except ValueError:
        head, body = lines, []
    else:
        if lines[start + 1 : start + 2] != [FIELDS_HEADER[1]]:
            raise ValueError("expect a line of '-' below 'Fields'")
        if lines[start + 2 : start + 3] not in ([], [""]):
            raise ValueError("expect a blank line below 'Fields'")
        head, body = lines[:start], lines[start + 3 :]

    text = [line for line in head if line]
    summary = text[0] if text else str()
    details = " ".join(text[1:])

    fields = dict()
    for line in filter(None, body):
        key, sep, description = line.partition(":")
        if not sep:
            raise ValueError(f"expect 'name: description', got '{line}'")
        fields[key.strip()] = description.strip()

    return SchemaDoc(summary, details, fields)


def schema_table(model):
    """
    Return a rich table of a schema instance's fields, values, and
    descriptions.
    """
    from rich.pretty import Pretty
    from rich.table import Table

    doc = model.__schema_doc__
    name = type(model).__name__

    table = Table(
        title=f"{name}: {doc.summary.lower()}" if doc.summary else name,
        caption=doc.details or None,
        caption_justify="left",
        title_justify="left",
        show_header=False,
        expand=True,
    )
    table.add_column("field", style="cyan")
    table.add_column("value", style="green")
    table.add_column("description", style="magenta")

    for key in model.__dataclass_fields__:
        value = getattr(model, key)
        shown = Pretty(value) if hasattr(value, "__schema_doc__") else str(value)
        table.add_row(key, shown, model.describe(key))

    return table


def schema(cls):
    from pydantic import ConfigDict
    from pydantic.dataclasses import dataclass

    doc = parse_docstring(cls.__doc__)
    cls = dataclass(config=ConfigDict(extra="forbid"), frozen=True)(cls)
    fields = cls.__dataclass_fields__

    for key, description in doc.fields.items():
        if key not in fields:
            raise ValueError(f"{cls.__name__} has no field {key} to describe")
        fields[key].metadata = dict(description=description)

    def describe(cls, key):
        return cls.__dataclass_fields__[key].metadata.get("description")

    def type_args(cls, key):
        return cls.__dataclass_fields__[key].type.__args__

    cls.__schema_doc__ = doc
    cls.describe = classmethod(describe)
    cls.type_args = classmethod(type_args)
    cls.table = schema_table

    return cls
