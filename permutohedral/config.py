class Config:
    def __init__(self, **kwargs) -> None:
        # ->> Kernel bandwidths, bilateral position / bilateral color / spatial position
        self.theta_alpha, self.theta_beta, self.theta_gamma = 80.0, 0.0625, 3.0

        # ->> Mean-field parameters
        self.spatial_compat = 3.0
        self.bilateral_compat = 10.0
        self.n_iterations = 10

        # ->> Certainty of hard labels when building unaries
        self.gt_prob = 0.7

        for name, value in kwargs.items():
            if not hasattr(self, name):
                raise TypeError("Unknown config option `{}`".format(name))
            setattr(self, name, value)
