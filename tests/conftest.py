import numpy as np
import cv2
import pytest

@pytest.fixture
def rng():
    return np.random.default_rng(0)

@pytest.fixture
def disc_image():
    # 128x128, один яскравий диск діаметром ~20 px у центрі, рівний фон
    img = np.zeros((128, 128), np.uint8) + 30
    cv2.circle(img, (64, 64), 10, 200, -1)
    return img

@pytest.fixture
def flat_image():
    return np.zeros((96, 96), np.uint8) + 50

@pytest.fixture
def ball_stack():
    # 40x40x40, куля радіусом 5 у центрі
    z, y, x = np.mgrid[:40, :40, :40]
    r2 = (z - 20) ** 2 + (y - 20) ** 2 + (x - 20) ** 2
    stack = np.zeros((40, 40, 40), np.uint16) + 20
    stack[r2 <= 25] = 200
    return stack
