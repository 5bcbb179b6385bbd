# ==============================================
# Graph import
# ==============================================
#
# PURPOSE:
#   Turn nested plain data (JSON documents, form posts) into a bean
#   graph that a single store() persists.
#
#   {"type": "book", "title": "Dune",
#    "ownPage": [{"type": "page", "text": "..."}],
#    "author": {"type": "author", "name": "Herbert"}}
#
#   - "type" names the bean type (required on every dict)
#   - "id" loads an existing bean instead of dispensing a new one
#     (only when loading is allowed)
#   - nested dicts become parent beans, lists of dicts become lists
#
# ==============================================

from typing import Any, List, Mapping, Sequence, Union

from fluidbean.errors import ValidationError
from fluidbean.bean.bean import Bean


class Cooker:
    """Builds bean graphs from nested dicts and lists."""

    def __init__(self, oodb: Any, allow_loading: bool = False, null_for_empty_string: bool = False):
        self.oodb = oodb
        self.allow_loading = allow_loading
        self.null_for_empty_string = null_for_empty_string

    def graph(
        self,
        data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        filter_empty: bool = False,
    ) -> Union[Bean, List[Bean]]:
        """
        Args:
            data: A typed dict (one bean) or a list of typed dicts
            filter_empty: Drop beans without any value from lists

        Returns:
            A Bean for a dict, a list of beans for a list

        Raises:
            ValidationError: for untyped dicts, scalars where beans are
                expected, or an "id" while loading is not allowed
        """
        if isinstance(data, Mapping):
            return self._bean(data, filter_empty)
        if isinstance(data, (list, tuple)):
            beans = []
            for item in data:
                bean = self.graph(item, filter_empty)
                if not isinstance(bean, Bean):
                    raise ValidationError(f"Expected a bean but got {type(item).__name__}")
                if filter_empty and bean.is_empty():
                    continue
                beans.append(bean)
            return beans
        raise ValidationError(f"Expected a dict or list but got {type(data).__name__}")

    def _bean(self, data: Mapping[str, Any], filter_empty: bool) -> Bean:
        if "type" not in data:
            raise ValidationError("Every dict in a bean graph needs a 'type'")
        values = dict(data)
        type_name = values.pop("type")
        record_id = values.pop("id", None)

        if record_id:
            if not self.allow_loading:
                raise ValidationError(
                    "Refusing to load a bean while cooking; enable allow_loading to accept ids"
                )
            bean = self.oodb.load(type_name, record_id)
        else:
            bean = self.oodb.dispense(type_name)

        for prop, value in values.items():
            if isinstance(value, (Mapping, list, tuple)):
                bean.set(prop, self.graph(value, filter_empty))
            elif value == "" and self.null_for_empty_string:
                bean.set(prop, None)
            else:
                bean.set(prop, value)
        return bean
