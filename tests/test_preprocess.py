import unittest

import numpy as np
from PIL import Image

from bodypix_mask.catalog import Architecture
from bodypix_mask.config import RESNET_MEAN_RGB
from bodypix_mask.errors import InvalidImageError
from bodypix_mask.preprocess import normalize, pad_edge


class TestPreprocessNormalize(unittest.TestCase):
    def _make_gradient(self, h: int, w: int) -> np.ndarray:
        # every pixel distinct so clamped reads are traceable
        img = np.zeros((h, w, 3), dtype=np.uint8)
        ys, xs = np.mgrid[0:h, 0:w]
        img[..., 0] = xs * 10
        img[..., 1] = ys * 10
        img[..., 2] = 7
        return img

    def _denormalize_resnet(self, t) -> np.ndarray:
        return t.to_nhwc()[0] + np.array(RESNET_MEAN_RGB, dtype=np.float32)

    def test_target_size_is_one_pixel_larger(self):
        img = self._make_gradient(3, 5)
        t = normalize(img, Architecture.RESNET)
        self.assertEqual((t.width, t.height), (6, 4))
        self.assertEqual(t.values.shape, (6 * 4 * 3,))
        self.assertEqual(t.values.dtype, np.float32)
        self.assertEqual(t.shape, (1, 4, 6, 3))

    def test_out_of_bounds_samples_replicate_last_row_and_column(self):
        img = self._make_gradient(3, 5)
        src = self._denormalize_resnet(normalize(img, Architecture.RESNET))
        for y in range(4):
            for x in range(6):
                expected = img[min(y, 2), min(x, 4)].astype(np.float32)
                np.testing.assert_allclose(src[y, x], expected, atol=1e-3)

    def test_layout_is_row_major_rgb_interleaved(self):
        img = self._make_gradient(3, 5)
        t = normalize(img, Architecture.MOBILENET)
        w = t.width
        x, y = 2, 1
        base = (y * w + x) * 3
        np.testing.assert_allclose(
            t.values[base : base + 3],
            img[y, x].astype(np.float32) / 127.5 - 1.0,
            atol=1e-6,
        )

    def test_resnet_subtracts_channel_means(self):
        img = np.full((2, 2, 3), (200, 100, 50), dtype=np.uint8)
        t = normalize(img, Architecture.RESNET)
        np.testing.assert_allclose(t.to_nhwc()[0, 0, 0], [76.85, -15.90, -53.06], atol=1e-4)

    def test_mobilenet_maps_to_unit_range(self):
        img = np.zeros((1, 2, 3), dtype=np.uint8)
        img[0, 1] = 255
        t = normalize(img, Architecture.MOBILENET)
        nhwc = t.to_nhwc()[0]
        np.testing.assert_allclose(nhwc[0, 0], [-1.0, -1.0, -1.0], atol=1e-6)
        np.testing.assert_allclose(nhwc[0, 1], [1.0, 1.0, 1.0], atol=1e-6)
        self.assertGreaterEqual(float(t.values.min()), -1.0)
        self.assertLessEqual(float(t.values.max()), 1.0 + 1e-6)

    def test_accepts_pil_image(self):
        img = Image.new("RGB", (7, 4), (10, 20, 30))
        t = normalize(img, Architecture.RESNET)
        self.assertEqual((t.width, t.height), (8, 5))

    def test_tensor_is_read_only(self):
        t = normalize(self._make_gradient(2, 2), Architecture.RESNET)
        with self.assertRaises(ValueError):
            t.values[0] = 1.0

    def test_zero_sized_images_are_rejected(self):
        for shape in ((0, 5, 3), (5, 0, 3)):
            with self.assertRaises(InvalidImageError):
                normalize(np.zeros(shape, dtype=np.uint8), Architecture.RESNET)

    def test_non_rgb_arrays_are_rejected(self):
        with self.assertRaises(InvalidImageError):
            normalize(np.zeros((4, 4), dtype=np.uint8), Architecture.MOBILENET)
        with self.assertRaises(InvalidImageError):
            normalize(np.zeros((4, 4, 4), dtype=np.uint8), Architecture.MOBILENET)

    def test_non_uint8_arrays_are_rejected(self):
        for dtype in (np.float32, np.float64, np.uint16):
            with self.assertRaises(InvalidImageError):
                normalize(np.full((4, 4, 3), 0.5).astype(dtype), Architecture.RESNET)

    def test_pad_edge_without_padding_is_identity(self):
        img = self._make_gradient(3, 3)
        self.assertTrue(np.array_equal(pad_edge(img, 0), img))


if __name__ == "__main__":
    unittest.main()
