"""HTML report generation"""

import base64
import logging
from datetime import datetime
from io import BytesIO
from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt
import numpy as np

matplotlib.use("Agg")

logging.getLogger("matplotlib").setLevel(logging.WARNING)
logging.getLogger("matplotlib.font_manager").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def plot_to_base64(fig):
    """Convert matplotlib figure to PNG"""
    buf = BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    buf.seek(0)
    img_base64 = base64.b64encode(buf.read()).decode("utf-8")
    buf.close()
    plt.close(fig)
    return f"data:image/png;base64,{img_base64}"


def create_cluster_size_plot(sizes: np.ndarray, n_clusters: np.ndarray):
    """Clusters per cluster size, log scale on both axes"""
    fig, ax = plt.subplots(figsize=(8, 3.5))

    ax.scatter(sizes, n_clusters, s=8, color="#2E86AB", zorder=2)

    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel("Read pairs per cluster", fontsize=10, color="black")
    ax.set_ylabel("Clusters", fontsize=10, color="black")
    ax.tick_params(colors="black")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    return plot_to_base64(fig)


def generate_html_report(
    output_dir: Path,
    cluster_stats: dict,
    sizes: np.ndarray,
    n_clusters: np.ndarray,
    title: str = "blrtag",
):
    """Generate HTML report with the cluster-size distribution"""
    output_dir = Path(output_dir)

    size_plot = create_cluster_size_plot(sizes, n_clusters) if len(sizes) else ""
    plot_html = f'<img src="{size_plot}" alt="Cluster size distribution">' if size_plot else ""
    run_date = datetime.now().strftime("%d/%m/%Y, %H:%M")

    rows = "\n".join(
        f"<tr><td>{key}</td><td>{value:,.2f}</td></tr>"
        if isinstance(value, float)
        else f"<tr><td>{key}</td><td>{value:,}</td></tr>"
        for key, value in cluster_stats.items()
    )

    html_content = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{ font-family: Helvetica, Arial, sans-serif; margin: 40px; color: #222; }}
        table {{ border-collapse: collapse; }}
        td {{ padding: 4px 16px 4px 0; }}
        .subtitle {{ color: #666; }}
    </style>
</head>
<body>
    <h1>{title}</h1>
    <div class="subtitle">Barcode clustering report, {run_date}</div>

    <h2>Cluster statistics</h2>
    <table>
{rows}
    </table>

    <h2>Cluster size distribution</h2>
    <div class="plot">{plot_html}</div>
</body>
</html>
"""

    report_file = output_dir / "blrtag_report.html"
    with open(report_file, "w") as f:
        f.write(html_content)

    logger.info("Wrote HTML report to: %s", report_file)
    return report_file
