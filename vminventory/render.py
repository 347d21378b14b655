import sys

from tabulate import tabulate

# The second column holds the object reference, not the kind.
HEADER = ("Name:", "Type:")


def is_expected(value, name_filter):
    return name_filter == "" or value == name_filter


def render(inventory, kinds, name_filter=""):
    """Rows of (name, identifier) grouped by kind in request order."""
    name_filter = name_filter or ""
    rows = []
    for kind in kinds:
        for record in inventory.get(kind, []):
            if is_expected(record.name, name_filter):
                rows.append((record.name, record.identifier))
    return rows


def format_table(rows):
    # names such as "1e5" must stay text
    return tabulate(list(rows), headers=HEADER, tablefmt="plain", disable_numparse=True) + "\n"


def print_table(rows, stream=None):
    stream = stream or sys.stdout
    stream.write(format_table(rows))
    stream.flush()
