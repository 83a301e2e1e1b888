class DifficultyGate:
    """Star rating band. A bound of 0 means that side is unbounded."""

    def __init__(self, min_stars=0.0, max_stars=0.0):
        self.min_stars = min_stars
        self.max_stars = max_stars

    @classmethod
    def from_config(cls, config):
        return cls(config.min_stars, config.max_stars)

    def is_restricted(self):
        return self.min_stars > 0 or self.max_stars > 0

    def too_low(self, rating):
        if rating is None:
            return False
        return self.min_stars > 0 and rating < self.min_stars

    def too_high(self, rating):
        if rating is None:
            return False
        return self.max_stars > 0 and rating > self.max_stars

    def out_of_band(self, rating):
        return self.too_low(rating) or self.too_high(rating)

    def __repr__(self):
        return f"DifficultyGate(min_stars={self.min_stars}, max_stars={self.max_stars})"
