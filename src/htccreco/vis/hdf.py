import h5py
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path

from htccreco.geometry.parameters import N_PHI, N_THETA
from htccreco.io.cluster_store import read_clusters


def centre_bins(theta, phi, theta0, phi0: float, dphi0: float):
    """
    Map cluster centre angles [rad] back onto (theta index, phi index): the
    nearest ring centre in theta, the nearest bin centre in phi (cyclic).
    """
    theta = np.asarray(theta, dtype=np.float64)
    phi = np.asarray(phi, dtype=np.float64)
    theta0 = np.asarray(theta0, dtype=np.float64)
    itheta = np.abs(theta[:, None] - theta0[None, :]).argmin(axis=1)
    iphi = np.rint((phi - phi0) / (2.0 * dphi0)).astype(np.int64) % N_PHI
    return itheta, iphi


def occupancy_map(h5_path: str) -> np.ndarray:
    """
    nphe-weighted (N_THETA, N_PHI) map of cluster centres: each cluster adds
    its total nphe to the bin holding its weighted theta/phi.
    """
    df = read_clusters(h5_path)
    with h5py.File(str(h5_path), "r") as f:
        meta = f["meta"].attrs
        theta0 = np.asarray(meta["theta0_rad"])
        phi0 = float(meta["phi0_rad"])
        dphi0 = float(meta["dphi0_rad"])

    img = np.zeros((N_THETA, N_PHI), dtype=np.float64)
    itheta, iphi = centre_bins(df["theta"].to_numpy(), df["phi"].to_numpy(), theta0, phi0, dphi0)
    np.add.at(img, (itheta, iphi), df["nphe"].to_numpy())
    return img


def save_occupancy_png(h5_path: str, out_png: str | None = None) -> str:
    h5_path = str(h5_path)
    img = occupancy_map(h5_path)

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    plt.figure()
    plt.imshow(img, origin="lower", aspect="auto")
    plt.colorbar(label="nphe")
    plt.xlabel("phi index")
    plt.ylabel("theta index")
    plt.title(Path(h5_path).name + " : clusters")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
