from datetime import datetime, timedelta, timezone


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class ConstantDie:
    """每次都擲出同一個點數（用來測試平手上限或壞掉的骰子）"""

    def __init__(self, face):
        self.face = face

    def roll(self):
        return self.face
