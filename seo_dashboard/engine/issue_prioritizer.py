SEVERITY_ORDER = {"error": 0, "warning": 1, "notice": 2}


class IssuePrioritizer:

    def prioritize(self, issues):
        return sorted(issues, key=lambda x: SEVERITY_ORDER.get(x.get("severity"), len(SEVERITY_ORDER)))
