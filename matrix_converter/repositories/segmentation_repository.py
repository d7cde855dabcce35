# repositories/segmentation_repository.py
import cv2
import numpy as np

from ..models.effect_settings import SegmentationParams


class SegmentationRepository:
    """
    One-image foreground mask + mask cleanup.

    • Sobel edge strength on the red channel.
    • Distance from white (light background assumption).
    • Box-blur smoothing passes, then cone feathering.
    """

    _SOBEL_X = np.array([[-1, 0, 1],
                         [-2, 0, 2],
                         [-1, 0, 1]], dtype=np.float64)
    _SOBEL_Y = _SOBEL_X.T.copy()

    # ---------- private helpers ----------
    @classmethod
    def _edge_strength(cls, red: np.ndarray) -> np.ndarray:
        """
        3×3 Sobel magnitude; the outermost ring stays 0.
        """
        h, w = red.shape
        out = np.zeros((h, w), dtype=np.float64)
        if h < 3 or w < 3:
            return out

        src = red.astype(np.float64)
        gx = cv2.filter2D(src, cv2.CV_64F, cls._SOBEL_X, borderType=cv2.BORDER_CONSTANT)
        gy = cv2.filter2D(src, cv2.CV_64F, cls._SOBEL_Y, borderType=cv2.BORDER_CONSTANT)
        out[1:-1, 1:-1] = np.sqrt(gx[1:-1, 1:-1] ** 2 + gy[1:-1, 1:-1] ** 2)
        return out

    @staticmethod
    def _color_distance(rgb: np.ndarray) -> np.ndarray:
        diff = 255.0 - rgb.astype(np.float64)
        return np.sqrt(np.sum(diff * diff, axis=2))

    @staticmethod
    def _weighted_mean(mask: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        """
        Σ(w·mask) / Σw over in-bounds neighbours only, rounded half-up.
        """
        src = mask.astype(np.float64)
        ones = np.ones_like(src)
        total = cv2.filter2D(src, cv2.CV_64F, kernel, borderType=cv2.BORDER_CONSTANT)
        weight = cv2.filter2D(ones, cv2.CV_64F, kernel, borderType=cv2.BORDER_CONSTANT)
        return np.clip(np.floor(total / weight + 0.5), 0, 255).astype(np.uint8)

    @classmethod
    def _smooth_mask(cls, mask: np.ndarray) -> np.ndarray:
        return cls._weighted_mean(mask, np.ones((3, 3), dtype=np.float64))

    @staticmethod
    def _feather_kernel(radius: int) -> np.ndarray:
        ax = np.arange(-radius, radius + 1, dtype=np.float64)
        dist = np.sqrt(ax[None, :] ** 2 + ax[:, None] ** 2)
        kernel = 1.0 - dist / radius
        kernel[dist > radius] = 0.0
        return kernel

    @classmethod
    def _feather_mask(cls, mask: np.ndarray, radius: int) -> np.ndarray:
        return cls._weighted_mean(mask, cls._feather_kernel(radius))

    # ---------- public API ----------
    def retrieve_raw_mask(self, rgba: np.ndarray, params: SegmentationParams) -> np.ndarray:
        """
        Hard 0/255 classification: edge > threshold OR colour distance > tolerance.
        """
        edges = self._edge_strength(rgba[:, :, 0])
        color_diff = self._color_distance(rgba[:, :, :3])
        foreground = (edges > params.threshold) | (color_diff > params.tolerance)
        return foreground.astype(np.uint8) * 255

    def refine_mask(self, mask: np.ndarray, params: SegmentationParams) -> np.ndarray:
        for _ in range(int(params.smoothing_passes)):
            mask = self._smooth_mask(mask)
        if params.feather_radius > 0:
            mask = self._feather_mask(mask, int(params.feather_radius))
        return mask

    def retrieve_mask(self, rgba: np.ndarray, params: SegmentationParams) -> np.ndarray:
        """
        Returns uint8 mask (H, W) with 0-255 values (255 = foreground).
        """
        return self.refine_mask(self.retrieve_raw_mask(rgba, params), params)
