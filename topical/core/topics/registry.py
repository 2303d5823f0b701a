"""
主题注册表
维护合法主题名集合以及每个主题名对应的不可伪造令牌
注册表只增不减，每次增长都会生成新的只读枚举快照
"""
import logging
import threading
from collections.abc import Mapping
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

from topical.config.settings import DEFAULT_TOPICS
from topical.core.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

# 只有注册表持有此对象，外部无法构造TopicToken
_REGISTRY_KEY = object()

ERR_INVALID_NAME = (
    'The "name" parameter for "addTopic()" is required and must be a string '
    '(or an array of strings).'
)


class TopicToken:
    """
    主题令牌

    每个主题名对应唯一的令牌实例，按对象身份比较
    """

    __slots__ = ("_name",)

    def __init__(self, name: str, _key: object = None):
        if _key is not _REGISTRY_KEY:
            raise TypeError("TopicToken instances are issued by TopicRegistry only")
        object.__setattr__(self, "_name", name)

    @property
    def name(self) -> str:
        return self._name

    def __setattr__(self, key, value):
        raise AttributeError("TopicToken is immutable")

    def __delattr__(self, key):
        raise AttributeError("TopicToken is immutable")

    def __reduce__(self):
        raise TypeError("TopicToken cannot be pickled")

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self) -> str:
        return f"<TopicToken {self._name}>"


class TopicEnumeration(Mapping):
    """
    主题枚举快照：主题名 -> TopicToken

    只读，支持 topics["INFO"] 与 topics.INFO 两种访问方式
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Dict[str, TopicToken]):
        object.__setattr__(self, "_entries", dict(entries))

    def __getitem__(self, name: str) -> TopicToken:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getattr__(self, name: str) -> TopicToken:
        entries = object.__getattribute__(self, "_entries")
        try:
            return entries[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, key, value):
        raise AttributeError("TopicEnumeration is read-only")

    def __delattr__(self, key):
        raise AttributeError("TopicEnumeration is read-only")

    def __setitem__(self, key, value):
        raise TypeError("TopicEnumeration is read-only")

    def __delitem__(self, key):
        raise TypeError("TopicEnumeration is read-only")

    def __dir__(self):
        return list(self._entries) + list(super().__dir__())

    def __repr__(self) -> str:
        return f"TopicEnumeration({', '.join(self._entries)})"


def _normalize_names(names: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    """校验并规范化主题名（转为大写），任意一个不合法则整体失败"""
    if isinstance(names, (list, tuple)):
        candidates = list(names)
    else:
        candidates = [names]

    normalized = []
    for name in candidates:
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError(ERR_INVALID_NAME)
        normalized.append(name.upper())

    return tuple(normalized)


class TopicRegistry:
    """
    主题注册表

    功能：
    - 注册主题名（大写规范化，重复注册静默跳过）
    - 为每个主题名签发稳定的令牌
    - 将令牌解析回主题名（按对象身份匹配）
    """

    def __init__(self, default_topics: Optional[Iterable[str]] = None):
        """
        初始化注册表

        Args:
            default_topics: 初始主题列表，默认 INFO 与 ERROR
        """
        self._lock = threading.Lock()
        self._names: Tuple[str, ...] = ()
        self._topics = TopicEnumeration({})

        initial = DEFAULT_TOPICS if default_topics is None else tuple(default_topics)
        if initial:
            self.add_topics(list(initial))

    @property
    def topics(self) -> TopicEnumeration:
        """当前主题枚举快照"""
        return self._topics

    @property
    def names(self) -> Tuple[str, ...]:
        """按注册顺序排列的主题名"""
        return self._names

    def add_topics(self, names: Union[str, Sequence[str]]) -> TopicEnumeration:
        """
        注册一个或多个主题

        Args:
            names: 主题名或主题名列表，均会被转为大写

        Returns:
            注册后的主题枚举快照

        Raises:
            InvalidArgumentError: 主题名缺失、为空或不是字符串
        """
        normalized = _normalize_names(names)

        with self._lock:
            added = []
            for name in normalized:
                if name not in self._names and name not in added:
                    added.append(name)
                    logger.debug(f'Adding new topic "{name}"')

            if added:
                self._names = self._names + tuple(added)

            # 重新生成快照，沿用已签发的令牌
            entries = {}
            for name in self._names:
                token = self._topics.get(name)
                entries[name] = token if token is not None else TopicToken(name, _REGISTRY_KEY)
            self._topics = TopicEnumeration(entries)

        return self._topics

    def resolve(self, token: object) -> Optional[str]:
        """
        将令牌解析为主题名

        只有当前快照中同一个令牌对象才会命中

        Returns:
            主题名，无法解析时返回None
        """
        if not isinstance(token, TopicToken):
            return None

        current = self._topics.get(token.name)
        if current is token:
            return token.name
        return None

    def __contains__(self, token: object) -> bool:
        return self.resolve(token) is not None

    def __len__(self) -> int:
        return len(self._names)
