"""
Déclencheur de scroll infini

Observe la visibilité d'une sentinelle (fin de liste). Quand elle devient
visible, qu'il reste des pages et qu'aucun chargement n'est en cours,
appelle `on_load_more` une seule fois pour cette transition.

Chaque mise à jour d'état (update) réarme l'observation, comme une
reconnexion d'observer: si la sentinelle est toujours visible à la
prochaine notification, c'est une nouvelle transition.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger("infinite_scroll")


class InfiniteScrollTrigger:

    def __init__(
        self,
        on_load_more: Callable[[], object],
        has_next_page: bool = False,
        is_fetching_next_page: bool = False,
        enabled: bool = True,
        threshold: float = 0.8,
    ):
        if not 0 <= threshold <= 1:
            raise ValueError("threshold doit être compris entre 0 et 1")
        self.on_load_more = on_load_more
        self.has_next_page = has_next_page
        self.is_fetching_next_page = is_fetching_next_page
        self.enabled = enabled
        self.threshold = threshold
        self._observing = enabled
        self._visible = False

    @property
    def observing(self) -> bool:
        return self._observing

    def handle_intersect(self, intersection_ratio: float) -> bool:
        """
        Notification de visibilité de la sentinelle.
        Retourne True si on_load_more a été appelé.
        """
        if not self._observing:
            return False

        visible = intersection_ratio > 0 and intersection_ratio >= self.threshold
        became_visible = visible and not self._visible
        self._visible = visible

        if not became_visible:
            return False
        if not self.has_next_page or self.is_fetching_next_page:
            return False

        self.on_load_more()
        return True

    def update(
        self,
        has_next_page: Optional[bool] = None,
        is_fetching_next_page: Optional[bool] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        if has_next_page is not None:
            self.has_next_page = has_next_page
        if is_fetching_next_page is not None:
            self.is_fetching_next_page = is_fetching_next_page
        if enabled is not None:
            self.enabled = enabled

        # Reconnexion
        self._observing = self.enabled
        self._visible = False

    def disconnect(self) -> None:
        self._observing = False
        self._visible = False
