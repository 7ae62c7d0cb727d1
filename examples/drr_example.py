import logging

import numpy as np
import matplotlib.pyplot as plt

from siddon_drr import (
    DetectorGeometry,
    Pose,
    ProjectionSettings,
    SiddonJacobsRayCastInterpolator,
    Volume,
    render_drr,
    render_drr_series,
)


def ellipsoid_phantom(shape):
    # Soft-tissue ellipsoid with two dense inserts, values in Hounsfield-like units.
    xx, yy, zz = np.mgrid[:shape[0], :shape[1], :shape[2]].astype(np.float64)
    xx = (xx - (shape[0] - 1) / 2) / ((shape[0] - 1) / 2)
    yy = (yy - (shape[1] - 1) / 2) / ((shape[1] - 1) / 2)
    zz = (zz - (shape[2] - 1) / 2) / ((shape[2] - 1) / 2)

    phantom = np.zeros(shape, dtype=np.float64)
    phantom[(xx / 0.8) ** 2 + (yy / 0.6) ** 2 + (zz / 0.9) ** 2 <= 1.0] = 40.0
    phantom[((xx - 0.3) / 0.15) ** 2 + (yy / 0.15) ** 2 + (zz / 0.7) ** 2 <= 1.0] = 1000.0
    phantom[((xx + 0.35) / 0.1) ** 2 + ((yy - 0.2) / 0.1) ** 2 + (zz / 0.1) ** 2 <= 1.0] = 600.0
    return phantom


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    volume = Volume(ellipsoid_phantom((96, 96, 96)), spacing=(1.5, 1.5, 1.5))
    pose = Pose(center=volume.center)

    settings = ProjectionSettings.from_mapping({
        "focal_distance": 1000.0,
        "threshold": 0.0,
        "physical_units": True,
        "num_workers": 4,
    })
    interp = SiddonJacobsRayCastInterpolator.from_settings(volume, pose, settings)
    detector = DetectorGeometry((192, 192), spacing=(1.5, 1.5), source_to_detector=1400.0)

    image = render_drr(interp, detector)

    # Move the volume as a registration optimizer would, then re-render.
    pose.set_parameters([0.0, 0.0, np.pi / 12, 10.0, 0.0, -5.0])
    moved = render_drr(interp, detector)

    angles = np.linspace(0, np.pi, 4, endpoint=False)
    series = render_drr_series(interp, detector, angles)

    plt.figure(figsize=(12, 6))
    plt.subplot(2, 3, 1)
    plt.imshow(image.numpy(), cmap='gray', origin='lower')
    plt.axis('off')
    plt.title("DRR (identity pose)")

    plt.subplot(2, 3, 2)
    plt.imshow(moved.numpy(), cmap='gray', origin='lower')
    plt.axis('off')
    plt.title("DRR (moved pose)")

    for i, angle in enumerate(angles[1:]):
        plt.subplot(2, 3, 4 + i)
        plt.imshow(series[i + 1].numpy(), cmap='gray', origin='lower')
        plt.axis('off')
        plt.title(f"Gantry {np.degrees(angle):.0f} deg")
    plt.tight_layout()
    plt.show()

    print("DRR range:", image.min().item(), image.max().item())


if __name__ == "__main__":
    main()
