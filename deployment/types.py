import click

from deployment.steps import StepRegistry


class MinInt(click.ParamType):
    name = "minint"

    def __init__(self, min_value):
        self.min_value = min_value

    def convert(self, value, param, ctx):
        try:
            ivalue = int(value)
        except ValueError:
            self.fail(f"{value} is not a valid integer", param, ctx)
        if ivalue < self.min_value:
            self.fail(
                f"{value} is less than the minimum allowed value of {self.min_value}", param, ctx
            )
        return ivalue


class StepSelector(click.ParamType):
    """A step name or tag known to the given registry."""

    name = "step"

    def __init__(self, registry: StepRegistry):
        self.registry = registry

    def convert(self, value, param, ctx):
        if not any(step.matches(value) for step in self.registry):
            self.fail(
                f"'{value}' is neither a step name nor a tag. "
                f"Steps: {', '.join(self.registry.names)}",
                param,
                ctx,
            )
        return value
