# pygame window for the CHIP-8 emulator
# paints the shared display buffer and feeds keyboard events into the shared keypad buffer


import logging

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_0, K_1, K_2, K_3,
    K_4, K_5, K_6, K_7,
    K_8, K_9, K_a, K_b,
    K_c, K_d, K_e, K_f,
)


# ******************** STATIC SECTION
KEY_MAPPINGS = {
    K_0: 0x0,
    K_1: 0x1,
    K_2: 0x2,
    K_3: 0x3,
    K_4: 0x4,
    K_5: 0x5,
    K_6: 0x6,
    K_7: 0x7,
    K_8: 0x8,
    K_9: 0x9,
    K_a: 0xA,
    K_b: 0xB,
    K_c: 0xC,
    K_d: 0xD,
    K_e: 0xE,
    K_f: 0xF,
}

SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)

log = logging.getLogger("chip8.display")


# ******************** I/O SECTION
class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE, surface=None):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        if surface is None:
            surface = pygame.display.set_mode((w * self.scale, h * self.scale))
        self.surface = surface
        self.surface.fill(self.background)

    def render(self, grid):
        """paint every ON cell of grid as a scale x scale rectangle, the change is visible after refresh"""
        self.surface.fill(self.background)
        for y, row in enumerate(grid):
            for x, pixel in enumerate(row):
                if pixel:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )

    @staticmethod
    def refresh():
        pygame.display.flip()


def handle_event(event, keypad):
    """apply a single pygame event to the keypad, return False when the user asked to quit"""
    if event.type == pygame.QUIT:
        return False
    if event.type == pygame.KEYDOWN:
        if event.key == pygame.K_ESCAPE:
            return False
        if event.key in KEY_MAPPINGS:
            keypad.press(KEY_MAPPINGS[event.key])
    elif event.type == pygame.KEYUP:
        if event.key in KEY_MAPPINGS:
            keypad.release(KEY_MAPPINGS[event.key])
    return True


def run_display(screen, vram, keypad, fps):
    """
    main thread loop: poll input, take a copy of the display buffer and paint it, fps times per second
    returns when the window gets closed or ESC is pressed
    """
    clock = pygame.time.Clock()
    run = True
    while run:
        clock.tick(fps)
        for event in pygame.event.get():
            if not handle_event(event, keypad):
                run = False
        screen.render(vram.snapshot())
        screen.refresh()
    log.info("Window closed")
