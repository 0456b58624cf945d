"""CLI Commands
-------------

Command-line entry points shipped with the package.

- ``gg_describe <plot.yaml|plot.json> [name=]data.csv ...`` builds and
  assembles a plot descriptor against CSV data and prints the resulting cell
  layout as YAML.
"""

__all__ = [
    "load_datasets",
    "describe_plot",
    "gg_describe",
]

# Keep this list minimal as this py will actually be executed
import os
import sys
from typing import Any, Dict, Sequence

# --------------------------------------------------------
#          DESCRIBE
# --------------------------------------------------------


def load_datasets(specs: Sequence[str]) -> Dict[str, Any]:
    """Read CSV files given as ``name=path`` or plain paths (named after the file stem)."""

    import pandas as pd

    datasets = {}
    for spec in specs:
        name, sep, path = spec.partition("=")
        if not sep:
            path = name
            name = os.path.splitext(os.path.basename(path))[0]
        datasets[name] = pd.read_csv(path)
    return datasets


def describe_plot(desc_file: str, data_specs: Sequence[str]) -> Dict[str, Any]:
    """Build and assemble the plot in ``desc_file``; return the table summary.

    When the descriptor names no default dataset and exactly one CSV is
    given, that CSV is used as the plot data.
    """
    from gg_toolkit.build import ggplotGrob
    from gg_toolkit.plot import plot_from_desc, read_plot_desc

    desc = read_plot_desc(desc_file)
    datasets = load_datasets(data_specs)
    if desc.data is None and len(datasets) == 1:
        desc = desc.model_copy(update={"data": next(iter(datasets))})
    table = ggplotGrob(plot_from_desc(desc, datasets))
    return table.describe()


def gg_describe() -> None:
    """CLI entry point: ``gg_describe <descriptor> [name=]data.csv ...``."""
    if len(sys.argv) < 2:
        print("Requires at least one parameter: <plot descriptor (.yaml/.json)> [[name=]data.csv ...]")
        sys.exit(1)

    import yaml

    summary = describe_plot(sys.argv[1], sys.argv[2:])
    print(yaml.safe_dump(summary, sort_keys=False))
