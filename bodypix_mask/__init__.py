"""BodyPix segmentation post-processing."""
