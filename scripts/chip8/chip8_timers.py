# 60Hz delay and sound timers for the CHIP-8 emulator


import logging
import threading

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import numpy as np
import pygame


TIMER_HZ = 60
BEEP_HZ = 800
BEEP_MS = 50
BEEP_VOLUME = 0.2

log = logging.getLogger("chip8.timers")


class Beeper:
    """square wave played while the sound timer is active, silent when no audio device is available"""
    def __init__(self, freq=BEEP_HZ, length_ms=BEEP_MS, volume=BEEP_VOLUME):
        self.sound = None
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init(44100, -16, 1)
        except pygame.error as e:
            log.warning(f"No audio device, the sound timer will be silent: {e}")
            return
        rate, size, channels = pygame.mixer.get_init()
        if size != -16:
            log.warning(f"Unsupported mixer sample size {size}, the sound timer will be silent")
            return
        t = np.arange(rate * length_ms // 1000)
        wave = ((t * freq * 2 / rate) % 2 >= 1).astype(np.float32) * 2 - 1
        wave = (wave * volume * 32767).astype(np.int16)
        if channels > 1:
            wave = np.repeat(wave[:, np.newaxis], channels, axis=1)    # one column per mixer channel
        self.sound = pygame.sndarray.make_sound(wave)

    def beep(self):
        if self.sound is not None and not pygame.mixer.get_busy():
            self.sound.play()


def tick(dt, st, beep):
    """one 60Hz step: count both timers down and beep while the sound timer is active"""
    dt.tick()
    if st.tick():
        beep()      # outside of the sound timer lock


def timer_loop(dt, st, beep, stop, hz=TIMER_HZ):
    delay = 1.0 / hz
    while not stop.wait(delay):
        tick(dt, st, beep)


def start_timers(dt, st, beep, stop, hz=TIMER_HZ):
    thread = threading.Thread(target=timer_loop, args=(dt, st, beep, stop, hz), name="chip8-timers", daemon=True)
    thread.start()
    return thread
